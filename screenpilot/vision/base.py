"""
Base Vision Model - turns a screenshot and an instruction into an action plan.
"""

import base64
import json
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from core.control import RunControl
from logger import logger

from ..errors import ModelError
from ..models import (
    Action,
    ActionType,
    ExecutionContext,
    ModelConfig,
    ModelProvider,
    ModelResponse,
    ValidationResult,
    detect_image_format,
    is_number,
)
from ..prompts import build_user_prompt, get_system_prompt

CLICK_TYPES = (ActionType.CLICK, ActionType.DOUBLE_CLICK, ActionType.RIGHT_CLICK)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object in a model reply.

    The whole reply is tried first (with code fences removed), then the
    first balanced {...} block embedded in prose.

    Raises:
        ModelError: if no JSON object can be parsed
    """
    stripped = text.strip()
    fenced = _CODE_FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    try:
        parsed = json.loads(stripped)
    except ValueError:
        block = _first_balanced_block(stripped)
        if block is None:
            raise ModelError(
                "Model response contains no JSON object",
                code="PARSE_ERROR",
                details={"response": text[:300]},
            )
        try:
            parsed = json.loads(block)
        except ValueError as e:
            raise ModelError(
                f"Model response contains invalid JSON: {e}",
                code="PARSE_ERROR",
                details={"response": text[:300]},
            ) from e

    if not isinstance(parsed, dict):
        raise ModelError(
            "Model response JSON is not an object",
            code="PARSE_ERROR",
            details={"response": text[:300]},
        )
    return parsed


def _first_balanced_block(text: str) -> Optional[str]:
    """Return the first balanced {...} substring, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


class BaseVisionModel(ABC):
    """
    Base class for vision model providers.

    Subclasses must implement:
        - complete(system_prompt, user_prompt, image_base64, media_type)
          -> (reply text, metadata)
    """

    provider: ModelProvider = ModelProvider.OPENAI
    default_model: str = ""
    max_instruction_length: int = 4000
    warn_instruction_length: int = 1000

    def __init__(self):
        self.api_key: Optional[str] = None
        self.model_name: Optional[str] = None
        self.base_url: Optional[str] = None
        self.parameters: Dict[str, Any] = {}
        self.timeout: float = 60.0
        self.language: Optional[str] = None
        self.control: Optional[RunControl] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, config: ModelConfig) -> None:
        if self._initialized:
            raise ModelError(f"{self.provider.value} model already initialized", code="ALREADY_INITIALIZED")
        if not config.api_key or not config.api_key.strip():
            raise ModelError(
                f"API key is required for {self.provider.value}", code="MISSING_API_KEY"
            )

        self.api_key = config.api_key.strip()
        self.model_name = config.name or self.default_model
        self.base_url = (config.base_url or "").rstrip("/") or None
        self.parameters = dict(config.parameters)
        self.timeout = config.timeout
        self.on_initialize()
        self._initialized = True
        logger.info(f"[MODEL] {self.provider.value} model ready: {self.model_name}")

    def on_initialize(self) -> None:
        pass

    def cleanup(self) -> None:
        """Drop credentials and provider resources."""
        self.on_cleanup()
        self.api_key = None
        self._initialized = False

    def on_cleanup(self) -> None:
        pass

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        image_base64: str,
        media_type: str,
    ) -> Tuple[str, Dict[str, Any]]:
        """Perform one prompted round trip and return (reply text, metadata)."""
        pass

    # --- Analysis ---

    def analyze(
        self,
        image: bytes,
        instruction: str,
        context: Optional[ExecutionContext] = None,
    ) -> ModelResponse:
        """
        Analyze a screenshot and plan the next actions.

        Args:
            image: PNG or JPEG bytes
            instruction: The task to accomplish
            context: Execution context (history, environment)

        Returns:
            ModelResponse with actions and a clamped confidence

        Raises:
            ModelError: on invalid input, transport failure or unparseable reply
        """
        self._ensure_initialized()
        image_format = detect_image_format(image or b"")
        if image_format is None:
            raise ModelError("Image must be PNG or JPEG data", code="INVALID_IMAGE")
        self._check_instruction(instruction)

        started = time.time()
        text, metadata = self.complete(
            get_system_prompt(self.language),
            build_user_prompt(instruction, context),
            base64.b64encode(image).decode("utf-8"),
            f"image/{image_format.value}",
        )
        response = self.parse_response(text)
        response.metadata.update(metadata)
        response.metadata.setdefault("model", self.model_name)
        response.metadata["provider"] = self.provider.value
        response.metadata["latency"] = round(time.time() - started, 3)

        logger.info(
            f"[MODEL] {len(response.actions)} action(s), confidence {response.confidence:.2f}: "
            f"{response.reasoning[:120]}"
        )
        return response

    def generate_actions(
        self,
        context: ExecutionContext,
        instruction: str = "Continue the current task",
    ) -> List[Action]:
        """Shorthand for analyze(context.screenshot, ...).actions."""
        if context.screenshot is None:
            raise ModelError("Context has no screenshot to analyze", code="INVALID_IMAGE")
        return self.analyze(context.screenshot.data, instruction, context).actions

    def parse_response(self, text: str) -> ModelResponse:
        """Turn the reply text into a ModelResponse (raises ModelError)."""
        if not text or not text.strip():
            raise ModelError("Model returned an empty response", code="EMPTY_RESPONSE")

        data = extract_json_object(text)
        entries = data.get("actions")
        if entries is None and (data.get("type") or data.get("action")):
            entries = [data]
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ModelError("'actions' must be a list", code="PARSE_ERROR")

        try:
            actions = [Action.from_plan(entry) for entry in entries]
        except (TypeError, ValueError) as e:
            raise ModelError(f"Invalid action in response: {e}", code="PARSE_ERROR") from e

        return ModelResponse(
            reasoning=str(data.get("reasoning") or data.get("thought") or ""),
            actions=actions,
            confidence=data.get("confidence", 0.5),
            metadata={"raw": text[:500]},
        )

    def _check_instruction(self, instruction: str) -> None:
        if not instruction or not instruction.strip():
            raise ModelError("Instruction must not be empty", code="INVALID_INSTRUCTION")
        if len(instruction) > self.max_instruction_length:
            raise ModelError(
                f"Instruction too long ({len(instruction)} > {self.max_instruction_length} chars)",
                code="INVALID_INSTRUCTION",
            )
        if len(instruction) > self.warn_instruction_length:
            logger.warning(f"[MODEL] Long instruction ({len(instruction)} chars)")

    # --- Validation ---

    def validate_action(
        self, action: Action, context: Optional[ExecutionContext] = None
    ) -> ValidationResult:
        """Structural checks for one action; bounds problems are warnings."""
        result = ValidationResult()
        params = action.parameters

        if action.type in CLICK_TYPES:
            if action.type == ActionType.CLICK and params.get("selector"):
                return result
            point = action.point()
            if point is None:
                result.add_error(
                    f"{action.type.value} requires numeric x and y",
                    "Provide pixel coordinates from the screenshot",
                )
            elif point[0] < 0 or point[1] < 0:
                result.add_error(f"{action.type.value} coordinates must be non-negative")
            else:
                self._check_bounds(point[0], point[1], context, result)

        elif action.type == ActionType.TYPE:
            text = params.get("text", action.text)
            if not isinstance(text, str) or not text:
                result.add_error("type requires non-empty text")

        elif action.type == ActionType.DRAG:
            coords = [params.get(k) for k in ("from_x", "from_y", "to_x", "to_y")]
            if not all(is_number(c) for c in coords):
                result.add_error("drag requires numeric from_x, from_y, to_x and to_y")

        elif action.type == ActionType.WAIT:
            duration = params.get("duration")
            if duration is None and params.get("selector"):
                return result
            if not is_number(duration) or duration < 0:
                result.add_error("wait requires a non-negative duration in milliseconds")

        elif action.type == ActionType.NAVIGATE:
            url = params.get("url")
            if not isinstance(url, str) or not url.strip():
                result.add_error("navigate requires a url string")

        elif action.type == ActionType.KEY:
            key = params.get("key")
            if not isinstance(key, str) or not key.strip():
                result.add_error("key requires a key name")

        elif action.type == ActionType.SCROLL:
            direction = params.get("direction", "down")
            if direction not in ("up", "down", "left", "right"):
                result.add_error(f"Invalid scroll direction: {direction}")

        return result

    @staticmethod
    def _check_bounds(x: float, y: float, context: Optional[ExecutionContext], result: ValidationResult) -> None:
        screenshot = context.screenshot if context is not None else None
        if screenshot is None:
            return
        if x >= screenshot.width or y >= screenshot.height:
            result.warnings.append(
                f"Coordinates ({x}, {y}) are outside the screenshot "
                f"({screenshot.width}x{screenshot.height})"
            )

    # --- Info ---

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "model": self.model_name or self.default_model,
            "base_url": self.base_url,
            "initialized": self._initialized,
        }

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise ModelError(f"{self.provider.value} model not initialized", code="NOT_INITIALIZED")
