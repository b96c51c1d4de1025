"""
Error taxonomy for ScreenPilot.

AgentError    - lifecycle/precondition violations, failed executions
OperatorError - unsupported capability, unavailable backend, failed command
ModelError    - missing credential, bad image, transport or parse failure
"""

from typing import Any, Dict, List, Optional


class ScreenPilotError(Exception):
    """Base error carrying a machine-readable code and details."""

    default_code = "SCREENPILOT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class AgentError(ScreenPilotError):
    """
    Agent lifecycle or execution failure.

    When raised from execute(), ``results`` holds the ActionResults collected
    before the failure and ``session_id`` the session that recorded them.
    """

    default_code = "AGENT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        results: Optional[List[Any]] = None,
        session_id: Optional[str] = None,
    ):
        super().__init__(message, code, details)
        self.results = list(results or [])
        self.session_id = session_id


class OperatorError(ScreenPilotError):
    default_code = "OPERATOR_ERROR"


class ModelError(ScreenPilotError):
    """
    Vision model failure.

    ``status_code`` is set for HTTP status failures, ``network`` for
    connection problems and timeouts.
    """

    default_code = "MODEL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        network: bool = False,
    ):
        super().__init__(message, code, details)
        self.status_code = status_code
        self.network = network
