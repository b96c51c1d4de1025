"""
Pydantic models for ScreenPilot.
Defines all data structures shared by agents, models, operators and sessions.
"""

import base64
import math
import uuid
from datetime import datetime
from enum import Enum
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image
from pydantic import BaseModel, Field, field_validator


def short_id() -> str:
    return uuid.uuid4().hex[:12]


class ActionType(str, Enum):
    """Supported agent actions."""

    # Mouse actions
    CLICK = "click"
    DOUBLE_CLICK = "double_click"
    RIGHT_CLICK = "right_click"
    DRAG = "drag"

    # Keyboard actions
    TYPE = "type"
    KEY = "key"  # Single key or combination (enter, ctrl+c, ...)

    # Navigation actions
    SCROLL = "scroll"
    NAVIGATE = "navigate"

    # Control actions
    WAIT = "wait"
    SCREENSHOT = "screenshot"
    FINISHED = "finished"
    CALL_USER = "call_user"


# Names models commonly use instead of the canonical action types
ACTION_ALIASES = {
    "double-click": ActionType.DOUBLE_CLICK,
    "doubleclick": ActionType.DOUBLE_CLICK,
    "dblclick": ActionType.DOUBLE_CLICK,
    "right-click": ActionType.RIGHT_CLICK,
    "rightclick": ActionType.RIGHT_CLICK,
    "type_text": ActionType.TYPE,
    "input": ActionType.TYPE,
    "key_press": ActionType.KEY,
    "keypress": ActionType.KEY,
    "press": ActionType.KEY,
    "hotkey": ActionType.KEY,
    "goto": ActionType.NAVIGATE,
    "open_url": ActionType.NAVIGATE,
    "sleep": ActionType.WAIT,
    "capture": ActionType.SCREENSHOT,
    "finish": ActionType.FINISHED,
    "done": ActionType.FINISHED,
    "complete": ActionType.FINISHED,
    "ask_user": ActionType.CALL_USER,
}

# camelCase parameter names accepted from model output
PARAMETER_ALIASES = {
    "fromX": "from_x",
    "fromY": "from_y",
    "toX": "to_x",
    "toY": "to_y",
    "fullPage": "full_page",
    "waitUntil": "wait_until",
}

# Plan entry keys that are not action parameters
_PLAN_KEYS = {"id", "type", "action", "parameters", "description", "reasoning"}


def is_number(value: Any) -> bool:
    """True for int/float values (bool excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Action(BaseModel):
    """
    One atomic automation instruction.

    Attributes:
        id: Unique identifier referenced by ActionResult.action_id
        type: Action type
        parameters: Structured parameters (x, y, text, key, url, selector, ...)
        coordinates: Target point when the action carries numeric x/y
        text: Text payload for type actions
        reasoning: The model's description of the action
    """

    id: str = Field(default_factory=short_id)
    type: ActionType
    parameters: Dict[str, Any] = Field(default_factory=dict)
    coordinates: Optional[Tuple[int, int]] = None
    text: Optional[str] = None
    reasoning: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)

    def param(self, name: str, default: Any = None) -> Any:
        value = self.parameters.get(name)
        return default if value is None else value

    def point(self) -> Optional[Tuple[int, int]]:
        """Return (x, y) from coordinates or numeric x/y parameters."""
        if self.coordinates is not None:
            return self.coordinates
        x, y = self.parameters.get("x"), self.parameters.get("y")
        if is_number(x) and is_number(y):
            return int(x), int(y)
        return None

    def has_coordinates(self) -> bool:
        return is_number(self.parameters.get("x")) and is_number(
            self.parameters.get("y")
        )

    @classmethod
    def from_plan(cls, entry: Dict[str, Any]) -> "Action":
        """
        Build an Action from one entry of a model's action plan.

        Accepts both ``{"type", "parameters", "description"}`` and flat
        entries (``{"type": "click", "x": 10, "y": 20}``).

        Raises:
            ValueError: if the entry has no recognizable action type
        """
        if not isinstance(entry, dict):
            raise ValueError(f"Action entry must be an object, got {type(entry).__name__}")

        raw_type = str(entry.get("type") or entry.get("action") or "").strip().lower()
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            if raw_type not in ACTION_ALIASES:
                raise ValueError(f"Unknown action type: '{raw_type}'")
            action_type = ACTION_ALIASES[raw_type]

        raw_parameters = entry.get("parameters")
        if raw_parameters is not None and not isinstance(raw_parameters, dict):
            raise ValueError(
                f"Action parameters must be an object, got {type(raw_parameters).__name__}"
            )
        parameters = dict(raw_parameters or {})
        for key, value in entry.items():
            if key not in _PLAN_KEYS:
                parameters.setdefault(key, value)
        parameters = {PARAMETER_ALIASES.get(k, k): v for k, v in parameters.items()}

        # "hotkey"-style plans carry a key list
        keys = parameters.pop("keys", None)
        if isinstance(keys, list) and keys and "key" not in parameters:
            parameters["key"] = "+".join(str(k) for k in keys)

        action = cls(
            type=action_type,
            parameters=parameters,
            text=parameters.get("text") if isinstance(parameters.get("text"), str) else None,
            reasoning=str(entry.get("description") or entry.get("reasoning") or ""),
        )
        if entry.get("id"):
            action.id = str(entry["id"])
        action.coordinates = action.point()
        return action


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SIGNATURE = b"\xff\xd8"


def detect_image_format(data: bytes) -> Optional[ImageFormat]:
    """Detect PNG/JPEG from the file signature."""
    if data.startswith(PNG_SIGNATURE):
        return ImageFormat.PNG
    if data.startswith(JPEG_SIGNATURE):
        return ImageFormat.JPEG
    return None


class Screenshot(BaseModel):
    """
    A captured image of a control surface.

    Attributes:
        data: Raw encoded image bytes
        width: Image width in pixels
        height: Image height in pixels
        format: Encoding of data
    """

    id: str = Field(default_factory=short_id)
    data: bytes = Field(repr=False)
    width: int
    height: int
    timestamp: datetime = Field(default_factory=datetime.now)
    format: ImageFormat = ImageFormat.PNG

    @classmethod
    def from_bytes(cls, data: bytes) -> "Screenshot":
        """Build a Screenshot from encoded PNG/JPEG bytes, reading size from the header."""
        image_format = detect_image_format(data)
        if image_format is None:
            raise ValueError("Unsupported image data (expected PNG or JPEG)")
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
        return cls(data=data, width=width, height=height, format=image_format)

    @classmethod
    def from_image(cls, image: Image.Image) -> "Screenshot":
        """Encode a PIL image as PNG."""
        buffered = BytesIO()
        image.save(buffered, format="PNG")
        return cls(
            data=buffered.getvalue(),
            width=image.width,
            height=image.height,
            format=ImageFormat.PNG,
        )

    @property
    def media_type(self) -> str:
        return f"image/{self.format.value}"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


class ActionResult(BaseModel):
    """
    Outcome of one action (or a marker recorded by the agent loop).

    Attributes:
        action_id: Id of the Action this result belongs to
        success: Whether the action succeeded
        error: Error message if failed
        data: Extra details (duration, url, flags)
        screenshot: Optional capture taken after the action
        meta: True for markers that are not executed actions
    """

    action_id: str
    success: bool
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    screenshot: Optional[Screenshot] = None
    meta: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def failed(cls, action_id: str, error: str, **data: Any) -> "ActionResult":
        return cls(action_id=action_id, success=False, error=error, data=data)


class ModelResponse(BaseModel):
    """Parsed answer of a vision model."""

    reasoning: str = ""
    actions: List[Action] = Field(default_factory=list)
    confidence: float = 0.5
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        try:
            value = float(value)
        except (TypeError, ValueError):
            return 0.5
        if math.isnan(value):
            return 0.0
        return max(0.0, min(1.0, value))


class ValidationResult(BaseModel):
    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    def add_error(self, message: str, suggestion: Optional[str] = None) -> None:
        self.valid = False
        self.errors.append(message)
        if suggestion:
            self.suggestions.append(suggestion)


class ExecutionContext(BaseModel):
    """
    Context handed to the model on every analysis.

    Attributes:
        session_id: Session of the current run
        screenshot: Last captured screenshot
        previous_actions: Actions already executed, in order
        environment: Free-form environment facts (mode, url, platform)
    """

    session_id: Optional[str] = None
    screenshot: Optional[Screenshot] = None
    previous_actions: List[Action] = Field(default_factory=list)
    environment: Dict[str, Any] = Field(default_factory=dict)


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class Session(BaseModel):
    """A recorded run of one instruction."""

    id: str = Field(default_factory=lambda: f"session-{short_id()}")
    instruction: str
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.RUNNING
    results: List[ActionResult] = Field(default_factory=list)
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.RUNNING


class SessionStats(BaseModel):
    duration_seconds: float
    total_actions: int
    successful_actions: int
    failed_actions: int
    success_rate: float


class SessionSummary(BaseModel):
    total: int = 0
    running: int = 0
    completed: int = 0
    error: int = 0
    cancelled: int = 0


class AgentStatus(str, Enum):
    """Agent lifecycle status."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"
    STOPPED = "stopped"


class AgentMode(str, Enum):
    """Control surface targeted by a hybrid agent."""

    DESKTOP = "desktop"
    BROWSER = "browser"


class ModelProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    GOOGLE = "google"
    CUSTOM = "custom"


class OperatorType(str, Enum):
    LOCAL_COMPUTER = "local_computer"
    WEB_BROWSER = "web_browser"
    HYBRID = "hybrid"


class ModelConfig(BaseModel):
    provider: ModelProvider = ModelProvider.OPENAI
    name: Optional[str] = None
    api_key: str = Field(default="", repr=False)
    base_url: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    timeout: float = 60.0


class OperatorConfig(BaseModel):
    type: OperatorType = OperatorType.LOCAL_COMPUTER
    settings: Dict[str, Any] = Field(default_factory=dict)


class ContinuationSettings(BaseModel):
    """Thresholds deciding whether the loop keeps iterating."""

    success_window: int = Field(default=3, ge=1)
    min_success_rate: float = Field(default=0.3, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.2, ge=0.0, le=1.0)
    failure_window: int = Field(default=5, ge=1)
    failure_threshold: int = Field(default=4, ge=1)


class AgentSettings(BaseModel):
    """
    Loop settings.

    Attributes:
        max_iterations: Upper bound on perceive-act iterations
        iteration_delay: Seconds to wait between iterations
        action_delay: Seconds to wait after each executed action
        auto_screenshot: Attach a fresh capture to each successful action result
        confirm_actions: Ask the confirmation callback before each action
        language: Language the model should reason in
    """

    max_iterations: int = Field(default=10, ge=1)
    iteration_delay: float = Field(default=1.0, ge=0.0)
    action_delay: float = Field(default=0.5, ge=0.0)
    auto_screenshot: bool = False
    confirm_actions: bool = False
    language: str = "en"
    continuation: ContinuationSettings = Field(default_factory=ContinuationSettings)


class AgentConfig(BaseModel):
    id: str = Field(default_factory=lambda: f"agent-{short_id()}")
    name: str = "ScreenPilot agent"
    model: ModelConfig = Field(default_factory=ModelConfig)
    operator: OperatorConfig = Field(default_factory=OperatorConfig)
    settings: AgentSettings = Field(default_factory=AgentSettings)
