"""
Hybrid Agent - switches between the desktop and a browser page per action.
"""

from typing import Any, Dict, Optional

from core.system_utils import current_platform
from logger import logger

from ..action_executor import ActionExecutor
from ..errors import AgentError
from ..events import EventType
from ..models import (
    Action,
    ActionResult,
    ActionType,
    AgentMode,
    ContinuationSettings,
    ExecutionContext,
    OperatorType,
    Screenshot,
)
from ..operators.base import BaseOperator
from ..operators.browser import BrowserOperator
from ..operators.input import InputOperator
from ..operators.screen import ScreenOperator
from .base_agent import BaseAgent
from .browser_agent import extract_url
from .mode_policy import KeywordModePolicy, ModePolicy


class HybridAgent(BaseAgent):
    """
    Agent owning a browser, a screen and an input operator.

    The mode policy picks the starting surface from the instruction and the
    surface of each action; capture and dispatch follow the current mode.
    Desktop actions go through the ActionExecutor.
    """

    operator_type = OperatorType.HYBRID
    default_settings = {
        "max_iterations": 20,
        "iteration_delay": 1.5,
        "continuation": ContinuationSettings(
            success_window=4, min_success_rate=0.4, min_confidence=0.25
        ),
    }

    def __init__(
        self,
        browser_operator: Optional[BrowserOperator] = None,
        screen_operator: Optional[ScreenOperator] = None,
        input_operator: Optional[InputOperator] = None,
        mode_policy: Optional[ModePolicy] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._provided_browser = browser_operator
        self._provided_screen = screen_operator
        self._provided_input = input_operator
        self.mode_policy = mode_policy or KeywordModePolicy()
        self.browser_operator: Optional[BrowserOperator] = None
        self.screen_operator: Optional[ScreenOperator] = None
        self.input_operator: Optional[InputOperator] = None
        self.executor: Optional[ActionExecutor] = None
        self.current_mode = AgentMode.DESKTOP

    def on_initialize(self) -> None:
        super().on_initialize()
        settings = self.config.operator.settings

        self.screen_operator = self._provided_screen or ScreenOperator()
        self.input_operator = self._provided_input or InputOperator()
        self.browser_operator = self._provided_browser or BrowserOperator()
        for operator in (self.screen_operator, self.input_operator, self.browser_operator):
            operator.control = self.control
            operator.initialize(settings)

        self.executor = ActionExecutor(self.input_operator, self.screen_operator, self.control)

    def on_stop(self) -> None:
        for operator in (self.browser_operator, self.input_operator, self.screen_operator):
            if operator is not None:
                operator.cleanup()
        self.browser_operator = None
        self.input_operator = None
        self.screen_operator = None
        self.executor = None
        super().on_stop()

    def operators(self) -> Dict[str, BaseOperator]:
        candidates = (
            ("browser", self.browser_operator),
            ("screen", self.screen_operator),
            ("input", self.input_operator),
        )
        return {name: operator for name, operator in candidates if operator is not None}

    # --- Mode ---

    def get_current_mode(self) -> AgentMode:
        return self.current_mode

    def switch_mode(self, mode: AgentMode, reason: str = "manual") -> bool:
        """
        Change the active surface.

        Returns:
            True if the mode changed
        """
        mode = AgentMode(mode)
        if mode == self.current_mode:
            return False
        previous = self.current_mode
        self.current_mode = mode
        if self.last_context is not None:
            self.last_context.environment["mode"] = mode.value
        logger.info(f"[AGENT] Mode {previous.value} -> {mode.value} ({reason})")
        self.events.emit(
            EventType.MODE_SWITCHED, previous=previous.value, current=mode.value, reason=reason
        )
        return True

    # --- Loop hooks ---

    def _prepare_run(self, instruction: str, context: ExecutionContext) -> None:
        self.switch_mode(self.mode_policy.determine_initial_mode(instruction), reason="instruction")
        context.environment["mode"] = self.current_mode.value
        url = extract_url(instruction)
        if url and self.current_mode == AgentMode.BROWSER:
            logger.info(f"[BROWSER] Instruction names {url}, opening it first")
            result = self._execute_action(Action(type=ActionType.NAVIGATE, parameters={"url": url}))
            if not result.success:
                logger.warning(f"[BROWSER] Navigation to {url} failed: {result.error}")

    def _capture_state(self) -> Screenshot:
        if self.current_mode == AgentMode.BROWSER:
            return self.browser_operator.capture()
        return self.screen_operator.capture()

    def _before_action(self, action: Action) -> None:
        target = self.mode_policy.mode_for_action(action, self.current_mode)
        self.switch_mode(target, reason=f"action {action.type.value}")

    def _dispatch(self, action: Action) -> ActionResult:
        if self.current_mode == AgentMode.BROWSER:
            result = self.browser_operator.execute(action)
            if action.type == ActionType.NAVIGATE and result.success:
                self.events.emit(
                    EventType.NAVIGATION_COMPLETED,
                    url=result.data.get("url"),
                    title=result.data.get("title"),
                )
            return result
        return self.executor.execute(action).to_action_result(action.id)

    def _environment(self) -> Dict[str, Any]:
        environment: Dict[str, Any] = {"mode": self.current_mode.value, "platform": current_platform()}
        if self.current_mode == AgentMode.BROWSER:
            environment["current_url"] = self.browser_operator.get_current_url()
        return environment

    # --- Direct control ---

    def take_screenshot(self, mode: Optional[AgentMode] = None) -> Screenshot:
        """Capture the surface of `mode` (the current mode by default)."""
        self._ensure_initialized()
        mode = AgentMode(mode) if mode else self.current_mode
        operator = self.browser_operator if mode == AgentMode.BROWSER else self.screen_operator
        return operator.capture()

    def execute_action(self, action: Action) -> ActionResult:
        """
        Run a single action outside of the loop, switching mode as needed.

        Raises:
            AgentError: if the agent is not initialized or a run is in flight
        """
        self._ensure_initialized()
        if self._in_flight:
            raise AgentError("Agent is already executing a task", code="ALREADY_RUNNING")
        self._before_action(action)
        return self._execute_action(action)

    def get_operator_status(self) -> Dict[str, Any]:
        return {
            "mode": self.current_mode.value,
            "operators": {name: op.get_status() for name, op in self.operators().items()},
        }
