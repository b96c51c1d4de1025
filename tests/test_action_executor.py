import pytest

from conftest import RecordingBackend
from screenpilot.action_executor import ActionExecutor
from screenpilot.models import Action, ActionType
from screenpilot.operators.input import InputOperator


@pytest.fixture
def executor(input_operator, screen_operator):
    input_operator.initialize()
    screen_operator.initialize()
    return ActionExecutor(input_operator, screen_operator)


@pytest.mark.parametrize("action_type", [ActionType.NAVIGATE, ActionType.FINISHED, ActionType.CALL_USER])
def test_non_desktop_types_fail(executor, action_type):
    result = executor.execute(Action(type=action_type, parameters={"url": "https://a.com"}))
    assert not result.success
    assert "Unsupported action type" in result.error


def test_unknown_type_fails(executor):
    result = executor.execute(Action.model_construct(type="bogus"))
    assert not result.success
    assert "bogus" in result.error


def test_click_forwards_point(executor, backend):
    result = executor.execute(Action(type=ActionType.CLICK, coordinates=(3, 4)))
    assert result.success
    assert backend.calls == [("click", 3, 4, "left", 1)]


def test_click_without_point(executor, backend):
    result = executor.execute(Action(type=ActionType.CLICK))
    assert not result.success
    assert backend.calls == []


def test_scroll_defaults(executor, backend):
    executor.execute(Action(type=ActionType.SCROLL))
    assert backend.calls == [("scroll", 500, 500, "down", 3)]


def test_type_and_key(executor, backend):
    executor.execute(Action(type=ActionType.TYPE, text="hello"))
    executor.execute(Action(type=ActionType.KEY, parameters={"key": "alt+tab"}))
    assert backend.calls == [("type_text", "hello"), ("press_key", "tab", ["alt"])]


def test_drag_requires_all_coordinates(executor):
    result = executor.execute(Action(type=ActionType.DRAG, parameters={"from_x": 1}))
    assert not result.success


def test_wait_defaults_to_one_second(executor, monkeypatch):
    slept = []
    monkeypatch.setattr("screenpilot.action_executor.stoppable_sleep", lambda s, c=None: slept.append(s))
    result = executor.execute(Action(type=ActionType.WAIT))
    assert result.success
    assert slept == [1.0]


def test_screenshot_reports_dimensions(executor):
    result = executor.execute(Action(type=ActionType.SCREENSHOT))
    assert result.success
    assert result.data == {"width": 64, "height": 48}
    assert result.screenshot is not None
    action_result = result.to_action_result("a1")
    assert action_result.action_id == "a1"
    assert "duration" in action_result.data


def test_screenshot_without_screen_operator(input_operator):
    input_operator.initialize()
    result = ActionExecutor(input_operator).execute(Action(type=ActionType.SCREENSHOT))
    assert not result.success


def test_backend_failure_is_reported():
    operator = InputOperator(backends=[RecordingBackend(fail_on="click")])
    operator.initialize()
    result = ActionExecutor(operator).execute(Action(type=ActionType.CLICK, coordinates=(1, 1)))
    assert not result.success
    assert "exploded" in result.error


def test_batch_stops_on_failure(executor, backend):
    actions = [
        Action(type=ActionType.CLICK, coordinates=(1, 1)),
        Action(type=ActionType.CLICK),
        Action(type=ActionType.CLICK, coordinates=(2, 2)),
    ]
    assert len(executor.execute_batch(actions)) == 2
    assert len(executor.execute_batch(actions, stop_on_failure=False)) == 3
