"""
Local Computer Agent - drives the desktop through screen capture and OS input.
"""

from typing import Any, Dict, Optional

from core.system_utils import allow_system_sleep, current_platform, keep_system_awake
from logger import logger

from ..action_executor import ActionExecutor
from ..models import Action, ActionResult, OperatorType, Screenshot
from ..operators.base import BaseOperator
from ..operators.input import InputOperator
from ..operators.screen import ScreenOperator
from .base_agent import BaseAgent


class LocalComputerAgent(BaseAgent):
    """
    Desktop agent: ScreenOperator for perception, InputOperator for actions,
    routed through an ActionExecutor.
    """

    operator_type = OperatorType.LOCAL_COMPUTER
    default_settings = {"max_iterations": 10, "iteration_delay": 1.0}

    def __init__(
        self,
        screen_operator: Optional[ScreenOperator] = None,
        input_operator: Optional[InputOperator] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._provided_screen = screen_operator
        self._provided_input = input_operator
        self.screen_operator: Optional[ScreenOperator] = None
        self.input_operator: Optional[InputOperator] = None
        self.executor: Optional[ActionExecutor] = None

    def on_initialize(self) -> None:
        super().on_initialize()
        settings = self.config.operator.settings

        self.screen_operator = self._provided_screen or ScreenOperator()
        self.screen_operator.control = self.control
        self.screen_operator.initialize(settings)

        self.input_operator = self._provided_input or InputOperator()
        self.input_operator.control = self.control
        self.input_operator.initialize(settings)

        self.executor = ActionExecutor(self.input_operator, self.screen_operator, self.control)

    def on_stop(self) -> None:
        for operator in (self.input_operator, self.screen_operator):
            if operator is not None:
                operator.cleanup()
        self.input_operator = None
        self.screen_operator = None
        self.executor = None
        super().on_stop()

    def operators(self) -> Dict[str, BaseOperator]:
        return {
            name: operator
            for name, operator in (("screen", self.screen_operator), ("input", self.input_operator))
            if operator is not None
        }

    def execute(self, instruction, context=None):
        # Windows would otherwise lock the session mid-run
        keep_system_awake()
        try:
            return super().execute(instruction, context)
        finally:
            allow_system_sleep()

    def _capture_state(self) -> Screenshot:
        return self.screen_operator.capture()

    def _dispatch(self, action: Action) -> ActionResult:
        return self.executor.execute(action).to_action_result(action.id)

    def _environment(self) -> Dict[str, Any]:
        size = self.screen_operator.screen_size()
        return {
            "mode": "desktop",
            "platform": current_platform(),
            "screen_size": f"{size[0]}x{size[1]}" if size else None,
        }

    def take_screenshot(self) -> Screenshot:
        """Capture the desktop outside of a run."""
        self._ensure_initialized()
        logger.info("[SCREEN] Manual screenshot requested")
        return self.screen_operator.capture()
