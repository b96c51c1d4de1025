import json
import time
from types import SimpleNamespace

import httpx
import pytest

from conftest import ScriptedModel, click, make_png, plan
from core.control import RunControl, StopRequested
from screenpilot.errors import ModelError
from screenpilot.models import (
    Action,
    ActionType,
    ExecutionContext,
    ModelConfig,
    ModelProvider,
    Screenshot,
)
from screenpilot.vision import (
    AnthropicVisionModel,
    GeminiVisionModel,
    OpenAIVisionModel,
    OpenRouterModel,
    create_model,
    extract_json_object,
)


def openai_reply(content):
    return {"model": "gpt-4o", "choices": [{"message": {"content": content}}], "usage": {"total_tokens": 5}}


def http_model(cls, handler, **parameters):
    model = cls(client=httpx.Client(transport=httpx.MockTransport(handler)))
    parameters.setdefault("retry_delay", 0)
    model.initialize(ModelConfig(provider=cls.provider, api_key=" secret ", parameters=parameters))
    return model


@pytest.fixture
def scripted():
    model = ScriptedModel([plan(click())])
    model.initialize(ModelConfig(api_key="k"))
    return model


class TestExtractJson:
    def test_fenced_block(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_block_inside_prose(self):
        text = 'Sure! Here is the plan: {"actions": [], "note": "use {braces}"} Good luck.'
        assert extract_json_object(text) == {"actions": [], "note": "use {braces}"}

    def test_no_object(self):
        with pytest.raises(ModelError) as exc:
            extract_json_object("I cannot help with that")
        assert exc.value.code == "PARSE_ERROR"

    def test_array_is_rejected(self):
        with pytest.raises(ModelError):
            extract_json_object("[1, 2]")


class TestParseResponse:
    def test_plan(self, scripted):
        response = scripted.parse_response(json.dumps(plan(click(1, 2), confidence=3)))
        assert response.actions[0].type == ActionType.CLICK
        assert response.confidence == 1.0
        assert response.reasoning == "plan"

    def test_single_action_object(self, scripted):
        response = scripted.parse_response('{"type": "key", "key": "enter"}')
        assert [a.type for a in response.actions] == [ActionType.KEY]

    def test_no_actions_is_an_empty_plan(self, scripted):
        assert scripted.parse_response('{"reasoning": "done"}').actions == []

    def test_empty_reply(self, scripted):
        with pytest.raises(ModelError) as exc:
            scripted.parse_response("   ")
        assert exc.value.code == "EMPTY_RESPONSE"

    def test_unknown_action_type(self, scripted):
        with pytest.raises(ModelError) as exc:
            scripted.parse_response('{"actions": [{"type": "teleport"}]}')
        assert exc.value.code == "PARSE_ERROR"

    @pytest.mark.parametrize("parameters", [5, [1, 2], True, "x=1"])
    def test_non_object_parameters(self, parameters, png):
        model = ScriptedModel([{"actions": [{"type": "click", "parameters": parameters}]}])
        model.initialize(ModelConfig(api_key="k"))
        with pytest.raises(ModelError) as exc:
            model.analyze(png, "click it")
        assert exc.value.code == "PARSE_ERROR"


class TestAnalyze:
    def test_requires_initialize(self, png):
        with pytest.raises(ModelError) as exc:
            ScriptedModel([plan()]).analyze(png, "do it")
        assert exc.value.code == "NOT_INITIALIZED"

    def test_missing_api_key(self):
        with pytest.raises(ModelError) as exc:
            ScriptedModel([plan()]).initialize(ModelConfig(api_key="  "))
        assert exc.value.code == "MISSING_API_KEY"

    def test_rejects_non_image(self, scripted):
        with pytest.raises(ModelError) as exc:
            scripted.analyze(b"GIF89a....", "do it")
        assert exc.value.code == "INVALID_IMAGE"

    def test_rejects_bad_instructions(self, scripted, png):
        for instruction in ("", "x" * 5000):
            with pytest.raises(ModelError) as exc:
                scripted.analyze(png, instruction)
            assert exc.value.code == "INVALID_INSTRUCTION"

    def test_metadata_and_prompts(self, scripted, png):
        context = ExecutionContext(previous_actions=[Action(type=ActionType.TYPE, text="hello")])
        response = scripted.analyze(png, "open the settings", context)
        assert response.metadata["provider"] == "openai"
        assert "latency" in response.metadata
        call = scripted.calls[0]
        assert call["media_type"] == "image/png"
        assert "open the settings" in call["user"]

    def test_generate_actions_needs_screenshot(self, scripted, png):
        with pytest.raises(ModelError):
            scripted.generate_actions(ExecutionContext())
        context = ExecutionContext(screenshot=Screenshot.from_bytes(png))
        assert [a.type for a in scripted.generate_actions(context)] == [ActionType.CLICK]


class TestValidateAction:
    def test_click_requires_point(self, scripted):
        result = scripted.validate_action(Action(type=ActionType.CLICK))
        assert not result.valid
        assert result.suggestions

    def test_click_by_selector(self, scripted):
        action = Action(type=ActionType.CLICK, parameters={"selector": "#ok"})
        assert scripted.validate_action(action).valid

    def test_negative_coordinates(self, scripted):
        action = Action(type=ActionType.CLICK, parameters={"x": -1, "y": 4})
        assert not scripted.validate_action(action).valid

    def test_out_of_bounds_is_a_warning(self, scripted, png):
        context = ExecutionContext(screenshot=Screenshot.from_bytes(png))
        result = scripted.validate_action(
            Action(type=ActionType.CLICK, parameters={"x": 500, "y": 4}), context
        )
        assert result.valid
        assert result.warnings

    @pytest.mark.parametrize(
        "action_type, parameters",
        [
            (ActionType.TYPE, {}),
            (ActionType.DRAG, {"from_x": 1, "from_y": 1, "to_x": 2}),
            (ActionType.WAIT, {"duration": -5}),
            (ActionType.NAVIGATE, {"url": " "}),
            (ActionType.KEY, {}),
            (ActionType.SCROLL, {"direction": "sideways"}),
        ],
    )
    def test_invalid(self, scripted, action_type, parameters):
        action = Action(type=action_type, parameters=parameters)
        assert not scripted.validate_action(action).valid

    def test_wait_for_selector_is_valid(self, scripted):
        action = Action(type=ActionType.WAIT, parameters={"selector": ".ready"})
        assert scripted.validate_action(action).valid


class TestOpenAI:
    def test_request_shape(self, png):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=openai_reply(json.dumps(plan(click()))))

        model = http_model(OpenAIVisionModel, handler)
        response = model.analyze(png, "click it")

        assert seen["auth"] == "Bearer secret"
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["body"]["model"] == "gpt-4o"
        image_part = seen["body"]["messages"][1]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")
        assert response.metadata["usage"] == {"total_tokens": 5}
        assert len(response.actions) == 1

    def test_client_error_is_not_retried(self, png):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="bad key")

        model = http_model(OpenAIVisionModel, handler, max_retries=3)
        with pytest.raises(ModelError) as exc:
            model.analyze(png, "click it")
        assert exc.value.status_code == 401
        assert len(calls) == 1

    def test_server_error_is_retried(self, png):
        replies = [httpx.Response(503), httpx.Response(200, json=openai_reply('{"actions": []}'))]

        def handler(request):
            return replies.pop(0)

        model = http_model(OpenAIVisionModel, handler, max_retries=2)
        assert model.analyze(png, "click it").actions == []

    def test_cancel_interrupts_retry_backoff(self, png):
        control = RunControl()
        calls = []

        def handler(request):
            calls.append(request)
            control.request_stop()
            return httpx.Response(503)

        model = http_model(OpenAIVisionModel, handler, max_retries=3, retry_delay=30)
        model.control = control
        started = time.time()
        with pytest.raises(StopRequested):
            model.analyze(png, "click it")
        assert time.time() - started < 5
        assert len(calls) == 1

    def test_timeout_is_a_network_error(self, png):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        model = http_model(OpenAIVisionModel, handler, max_retries=2)
        with pytest.raises(ModelError) as exc:
            model.analyze(png, "click it")
        assert exc.value.network
        assert exc.value.code == "TIMEOUT"

    def test_missing_content(self, png):
        model = http_model(OpenAIVisionModel, lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ModelError) as exc:
            model.analyze(png, "click it")
        assert exc.value.code == "PARSE_ERROR"


def test_openrouter_headers(png):
    seen = {}

    def handler(request):
        seen["x-title"] = request.headers["x-title"]
        return httpx.Response(200, json=openai_reply('{"actions": []}'))

    model = http_model(OpenRouterModel, handler, app_name="tests")
    model.analyze(png, "look")
    assert seen["x-title"] == "tests"
    assert model.get_model_info()["base_url"] == "https://openrouter.ai/api/v1"


def test_anthropic_request_shape(png):
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"content": [{"type": "text", "text": json.dumps(plan(click()))}], "stop_reason": "end_turn"},
        )

    model = http_model(AnthropicVisionModel, handler)
    response = model.analyze(png, "click it")
    assert seen["headers"]["x-api-key"] == "secret"
    assert seen["body"]["system"]
    assert seen["body"]["messages"][0]["content"][0]["source"]["media_type"] == "image/png"
    assert response.metadata["stop_reason"] == "end_turn"


class FakeChatModel:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.messages = None

    def invoke(self, messages):
        self.messages = messages
        if self.error:
            raise self.error
        return SimpleNamespace(content=self.reply, usage_metadata={"total_tokens": 7})


class TestGemini:
    def test_invokes_chat_model(self, png):
        chat = FakeChatModel(reply=[{"type": "text", "text": json.dumps(plan(click()))}])
        model = GeminiVisionModel(chat_model=chat)
        model.initialize(ModelConfig(provider=ModelProvider.GOOGLE, api_key="k"))
        response = model.analyze(png, "click it")
        assert len(response.actions) == 1
        assert response.metadata["usage"] == {"total_tokens": 7}
        assert len(chat.messages) == 2

    def test_failure_becomes_model_error(self, png):
        model = GeminiVisionModel(chat_model=FakeChatModel(error=RuntimeError("quota")))
        model.initialize(ModelConfig(provider=ModelProvider.GOOGLE, api_key="k"))
        with pytest.raises(ModelError) as exc:
            model.analyze(png, "click it")
        assert exc.value.network


def test_registry_creates_every_provider():
    for provider in ModelProvider:
        assert create_model(provider).provider == provider
