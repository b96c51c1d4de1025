import json
import os
from io import BytesIO
from typing import Any, Dict, List, Optional

os.environ.setdefault("SCREENPILOT_FILE_LOGGING", "0")
os.environ.setdefault("SCREENPILOT_LOG_LEVEL", "WARNING")

import pytest
from PIL import Image

from screenpilot.models import ActionType, AgentConfig, ModelConfig, OperatorConfig, OperatorType
from screenpilot.operators.input import InputBackend, InputOperator
from screenpilot.operators.screen import HookCapture, ScreenOperator
from screenpilot.vision.base import BaseVisionModel


def make_png(width: int = 64, height: int = 48, color=(200, 200, 200)) -> bytes:
    buffered = BytesIO()
    Image.new("RGB", (width, height), color).save(buffered, format="PNG")
    return buffered.getvalue()


def click(x: int = 10, y: int = 20, description: str = "click") -> Dict[str, Any]:
    return {"type": "click", "parameters": {"x": x, "y": y}, "description": description}


def plan(*actions: Dict[str, Any], confidence: float = 0.9, reasoning: str = "plan") -> Dict[str, Any]:
    return {"reasoning": reasoning, "actions": list(actions), "confidence": confidence}


class ScriptedModel(BaseVisionModel):
    """Vision model replaying canned replies; the last reply repeats."""

    default_model = "scripted"

    def __init__(self, replies: List[Any]):
        super().__init__()
        self.replies = list(replies)
        self.calls: List[Dict[str, str]] = []

    def complete(self, system_prompt, user_prompt, image_base64, media_type):
        self.calls.append({"system": system_prompt, "user": user_prompt, "media_type": media_type})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return text, {"model": "scripted"}


class RecordingBackend(InputBackend):
    """Input backend recording every call instead of moving the mouse."""

    name = "recording"
    supported = frozenset(
        (
            ActionType.CLICK,
            ActionType.DOUBLE_CLICK,
            ActionType.RIGHT_CLICK,
            ActionType.DRAG,
            ActionType.TYPE,
            ActionType.KEY,
            ActionType.SCROLL,
        )
    )

    def __init__(self, fail_on: Optional[str] = None):
        self.calls: List[tuple] = []
        self.fail_on = fail_on

    def available(self) -> bool:
        return True

    def _record(self, name, *args):
        if name == self.fail_on:
            raise RuntimeError(f"{name} exploded")
        self.calls.append((name,) + args)

    def click(self, x, y, button="left", clicks=1):
        self._record("click", x, y, button, clicks)

    def drag(self, from_x, from_y, to_x, to_y):
        self._record("drag", from_x, from_y, to_x, to_y)

    def type_text(self, text):
        self._record("type_text", text)

    def press_key(self, key, modifiers):
        self._record("press_key", key, list(modifiers))

    def scroll(self, x, y, direction, clicks):
        self._record("scroll", x, y, direction, clicks)


@pytest.fixture
def png() -> bytes:
    return make_png()


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def screen_operator(png) -> ScreenOperator:
    return ScreenOperator(strategies=[HookCapture(lambda: png)])


@pytest.fixture
def input_operator(backend) -> InputOperator:
    return InputOperator(backends=[backend])


@pytest.fixture
def agent_config():
    def build(operator_type=OperatorType.LOCAL_COMPUTER, **settings) -> AgentConfig:
        settings.setdefault("iteration_delay", 0)
        settings.setdefault("action_delay", 0)
        return AgentConfig(
            name="test agent",
            model=ModelConfig(api_key="test-key"),
            operator=OperatorConfig(type=operator_type),
            settings=settings,
        )

    return build
