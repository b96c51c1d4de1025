"""
Base Operator - capability-described executor over one control surface.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.control import RunControl, StopRequested, stoppable_sleep
from logger import logger

from ..errors import OperatorError
from ..models import Action, ActionResult, ActionType, Screenshot, is_number


class ParameterSpec(BaseModel):
    """Declared parameter of a capability."""

    type: str = "string"  # number | string | boolean | array
    required: bool = False
    default: Any = None
    choices: Optional[List[Any]] = None
    description: str = ""


class Capability(BaseModel):
    """
    An action type an operator can perform.

    Attributes:
        action: Action type handled
        description: Human readable description
        parameters: Parameter specs keyed by parameter name
    """

    action: ActionType
    description: str = ""
    parameters: Dict[str, ParameterSpec] = Field(default_factory=dict)

    def resolve(self, action: Action) -> Dict[str, Any]:
        """
        Merge action parameters with declared defaults and check them.

        Raises:
            ValueError: if a required parameter is missing or a choice is invalid
        """
        params = dict(action.parameters)
        if action.coordinates is not None:
            params.setdefault("x", action.coordinates[0])
            params.setdefault("y", action.coordinates[1])
        if action.text is not None:
            params.setdefault("text", action.text)

        for name, spec in self.parameters.items():
            if params.get(name) is None and spec.default is not None:
                params[name] = spec.default
            value = params.get(name)
            if value is None:
                if spec.required:
                    raise ValueError(
                        f"Missing required parameter '{name}' for {self.action.value}"
                    )
                continue
            if spec.type == "number" and not is_number(value):
                raise ValueError(f"Parameter '{name}' must be a number, got {value!r}")
            if spec.choices and value not in spec.choices:
                raise ValueError(
                    f"Parameter '{name}' must be one of {spec.choices}, got {value!r}"
                )
        return params


def number(required: bool = False, default: Any = None, description: str = "") -> ParameterSpec:
    return ParameterSpec(type="number", required=required, default=default, description=description)


def string(
    required: bool = False,
    default: Any = None,
    choices: Optional[List[Any]] = None,
    description: str = "",
) -> ParameterSpec:
    return ParameterSpec(
        type="string", required=required, default=default, choices=choices, description=description
    )


class BaseOperator(ABC):
    """
    Base class for operators.

    Subclasses must implement:
        - declare_capabilities() -> List[Capability]
        - on_initialize()
        - perform(action, params) -> Optional[dict]

    and may override on_capture(), on_cleanup() and screen_size().
    """

    operator_name: str = ""

    def __init__(self):
        self.settings: Dict[str, Any] = {}
        self.control: Optional[RunControl] = None
        self._initialized = False
        self._capabilities: Dict[ActionType, Capability] = {
            capability.action: capability for capability in self.declare_capabilities()
        }

    @abstractmethod
    def declare_capabilities(self) -> List[Capability]:
        """Return the capabilities this operator supports."""
        pass

    @abstractmethod
    def on_initialize(self) -> None:
        """Acquire backends; raise OperatorError if none is usable."""
        pass

    @abstractmethod
    def perform(self, action: Action, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Perform the side effect. Exceptions become failed results."""
        pass

    # --- Lifecycle ---

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, settings: Optional[Dict[str, Any]] = None) -> None:
        if self._initialized:
            raise OperatorError(
                f"{self.operator_name} operator already initialized",
                code="ALREADY_INITIALIZED",
            )
        self.settings = dict(settings or {})
        try:
            self.on_initialize()
        except OperatorError:
            raise
        except Exception as e:
            raise OperatorError(
                f"Failed to initialize {self.operator_name} operator: {e}",
                code="INITIALIZATION_FAILED",
            ) from e
        self._initialized = True
        logger.info(f"[OPERATOR] {self.operator_name} initialized")

    def cleanup(self) -> None:
        """Release resources. Safe to call repeatedly."""
        if not self._initialized:
            return
        try:
            self.on_cleanup()
        finally:
            self._initialized = False
            logger.info(f"[OPERATOR] {self.operator_name} cleaned up")

    def on_cleanup(self) -> None:
        pass

    # --- Capabilities ---

    @property
    def capabilities(self) -> List[Capability]:
        return list(self._capabilities.values())

    def supports_action(self, action_type: ActionType) -> bool:
        return action_type in self._capabilities

    def get_capability(self, action_type: ActionType) -> Optional[Capability]:
        return self._capabilities.get(action_type)

    # --- Execution ---

    def execute(self, action: Action) -> ActionResult:
        """
        Execute an action.

        Raises:
            OperatorError: if the operator is not initialized or the action
                type is not a declared capability

        Returns:
            ActionResult; execution failures are reported as success=False
        """
        self._ensure_initialized()
        capability = self._capabilities.get(action.type)
        if capability is None:
            raise OperatorError(
                f"{self.operator_name} operator does not support '{action.type.value}'",
                code="UNSUPPORTED_ACTION",
                details={"action_type": action.type.value},
            )

        start = time.time()
        try:
            params = capability.resolve(action)
            data = dict(self.perform(action, params) or {})
        except StopRequested:
            raise
        except Exception as e:
            logger.error(f"[OPERATOR] {self.operator_name} {action.type.value} failed: {e}")
            return ActionResult.failed(
                action.id, str(e), duration=round(time.time() - start, 3)
            )

        screenshot = data.pop("screenshot", None)
        data.setdefault("duration", round(time.time() - start, 3))
        return ActionResult(
            action_id=action.id, success=True, data=data, screenshot=screenshot
        )

    def capture(self) -> Screenshot:
        """
        Capture the surface.

        Raises:
            OperatorError: if this operator cannot capture or every attempt failed
        """
        self._ensure_initialized()
        try:
            return self.on_capture()
        except OperatorError:
            raise
        except Exception as e:
            raise OperatorError(
                f"{self.operator_name} capture failed: {e}", code="CAPTURE_FAILED"
            ) from e

    def on_capture(self) -> Screenshot:
        raise OperatorError(
            f"{self.operator_name} operator cannot capture screenshots",
            code="CAPTURE_UNSUPPORTED",
        )

    def screen_size(self) -> Optional[Tuple[int, int]]:
        """Size of the controlled surface, when known."""
        return None

    def validate_point(self, x: Any, y: Any) -> bool:
        """Check that (x, y) is a non-negative point inside the surface."""
        if not (is_number(x) and is_number(y)) or x < 0 or y < 0:
            return False
        size = self.screen_size()
        if size is None:
            return True
        width, height = size
        return x < width and y < height

    def sleep(self, duration_s: float) -> None:
        """Interruptible sleep bound to the owning agent's run control."""
        stoppable_sleep(duration_s, self.control)

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise OperatorError(
                f"{self.operator_name} operator not initialized", code="NOT_INITIALIZED"
            )

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.operator_name,
            "initialized": self._initialized,
            "capabilities": [c.action.value for c in self.capabilities],
        }
