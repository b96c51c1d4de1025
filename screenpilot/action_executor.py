"""
Action Executor - Executes agent actions on the local desktop.
Maps each action type onto the input/screen operators and times the call.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from core.control import RunControl, StopRequested, stoppable_sleep
from logger import logger

from .errors import OperatorError
from .models import Action, ActionResult, ActionType, Screenshot, is_number
from .operators.base import BaseOperator


class ExecutionResult(BaseModel):
    """Normalized outcome of one executed action."""

    success: bool
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    duration: float = 0.0
    screenshot: Optional[Screenshot] = None

    def to_action_result(self, action_id: str) -> ActionResult:
        data = dict(self.data)
        data["duration"] = round(self.duration, 3)
        return ActionResult(
            action_id=action_id,
            success=self.success,
            error=self.error,
            data=data,
            screenshot=self.screenshot,
        )


def _type_name(action: Action) -> str:
    return getattr(action.type, "value", str(action.type))


class ActionExecutor:
    """
    Executes desktop actions through an InputOperator and a ScreenOperator.

    Every action type has an explicit handler; anything else (navigate,
    finished, call_user or an unknown type) fails instead of succeeding.
    """

    DEFAULT_WAIT_MS = 1000
    DEFAULT_SCROLL_POINT = (500, 500)
    DEFAULT_SCROLL_CLICKS = 3

    def __init__(
        self,
        input_operator: BaseOperator,
        screen_operator: Optional[BaseOperator] = None,
        control: Optional[RunControl] = None,
    ):
        """
        Initialize the action executor.

        Args:
            input_operator: Operator performing mouse/keyboard actions
            screen_operator: Operator used for screenshot actions
            control: Run control making waits interruptible
        """
        self.input_operator = input_operator
        self.screen_operator = screen_operator
        self.control = control
        self._handlers: Dict[ActionType, Callable[[Action], ExecutionResult]] = {
            ActionType.CLICK: self._execute_click,
            ActionType.DOUBLE_CLICK: self._execute_click,
            ActionType.RIGHT_CLICK: self._execute_click,
            ActionType.DRAG: self._execute_drag,
            ActionType.TYPE: self._execute_type,
            ActionType.KEY: self._execute_key,
            ActionType.SCROLL: self._execute_scroll,
            ActionType.WAIT: self._execute_wait,
            ActionType.SCREENSHOT: self._execute_screenshot,
        }

    @property
    def supported_types(self) -> List[ActionType]:
        return list(self._handlers)

    def execute(self, action: Action) -> ExecutionResult:
        """
        Execute an agent action.

        Args:
            action: The action to execute

        Returns:
            ExecutionResult with success flag, data, error and duration
        """
        start = time.time()
        handler = self._handlers.get(action.type)

        if handler is None:
            logger.warning(f"[ACTION] Unsupported action type: {_type_name(action)}")
            return ExecutionResult(
                success=False,
                error=f"Unsupported action type: {_type_name(action)}",
                duration=time.time() - start,
            )

        try:
            result = handler(action)
        except StopRequested:
            raise
        except OperatorError as e:
            logger.error(f"[ACTION] Error executing {_type_name(action)}: {e}")
            result = ExecutionResult(success=False, error=str(e))

        result.duration = time.time() - start
        status = "✓" if result.success else f"✗ {result.error}"
        logger.info(f"[ACTION] {_type_name(action)} {status} ({result.duration:.2f}s)")
        return result

    def execute_batch(self, actions: List[Action], stop_on_failure: bool = True) -> List[ExecutionResult]:
        """
        Execute actions sequentially.

        Args:
            actions: Actions to execute in order
            stop_on_failure: Stop at the first failed action

        Returns:
            One ExecutionResult per executed action
        """
        logger.info(f"[ACTION] Executing batch of {len(actions)} actions")
        results = []
        for index, action in enumerate(actions, start=1):
            if self.control is not None:
                self.control.check_should_stop()
            result = self.execute(action)
            results.append(result)
            if not result.success and stop_on_failure:
                logger.warning(f"[ACTION] Batch action {index} failed, stopping batch")
                break
        return results

    # --- Handlers ---

    def _forward(self, action: Action, parameters: Dict[str, Any]) -> ExecutionResult:
        """Send a normalized copy of the action to the input operator."""
        forwarded = Action(id=action.id, type=action.type, parameters=parameters, reasoning=action.reasoning)
        result = self.input_operator.execute(forwarded)
        return ExecutionResult(success=result.success, data=result.data, error=result.error)

    def _execute_click(self, action: Action) -> ExecutionResult:
        point = action.point()
        if point is None:
            return ExecutionResult(success=False, error=f"{_type_name(action)} requires x and y coordinates")
        x, y = point
        params = {"x": x, "y": y}
        if action.type == ActionType.CLICK:
            params["button"] = action.param("button", "left")
        return self._forward(action, params)

    def _execute_drag(self, action: Action) -> ExecutionResult:
        coords = {k: action.param(k) for k in ("from_x", "from_y", "to_x", "to_y")}
        if not all(is_number(v) for v in coords.values()):
            return ExecutionResult(success=False, error="Drag requires from_x, from_y, to_x and to_y")
        return self._forward(action, coords)

    def _execute_type(self, action: Action) -> ExecutionResult:
        text = action.param("text", action.text)
        if not text:
            return ExecutionResult(success=False, error="Type requires text")
        return self._forward(action, {"text": str(text)})

    def _execute_key(self, action: Action) -> ExecutionResult:
        key = action.param("key")
        if not key:
            return ExecutionResult(success=False, error="Key requires a key name")
        return self._forward(action, {"key": str(key), "modifiers": action.param("modifiers", [])})

    def _execute_scroll(self, action: Action) -> ExecutionResult:
        x, y = action.point() or self.DEFAULT_SCROLL_POINT
        clicks = action.param("clicks", action.param("amount", self.DEFAULT_SCROLL_CLICKS))
        return self._forward(
            action,
            {"x": x, "y": y, "direction": action.param("direction", "down"), "clicks": clicks},
        )

    def _execute_wait(self, action: Action) -> ExecutionResult:
        duration = action.param("duration", self.DEFAULT_WAIT_MS)
        if not is_number(duration) or duration < 0:
            return ExecutionResult(success=False, error="Wait requires a non-negative duration")
        logger.info(f"[ACTION] Wait {duration}ms: {action.reasoning}")
        stoppable_sleep(duration / 1000, self.control)
        return ExecutionResult(success=True, data={"duration_ms": duration})

    def _execute_screenshot(self, action: Action) -> ExecutionResult:
        if self.screen_operator is None:
            return ExecutionResult(success=False, error="No screen operator available")
        screenshot = self.screen_operator.capture()
        return ExecutionResult(
            success=True,
            data={"width": screenshot.width, "height": screenshot.height},
            screenshot=screenshot,
        )
