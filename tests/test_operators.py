from unittest.mock import MagicMock

import pytest

from conftest import RecordingBackend, make_png
from screenpilot.errors import OperatorError
from screenpilot.models import Action, ActionType
from screenpilot.operators.browser import BrowserOperator, normalize_url, playwright_key
from screenpilot.operators.input import InputOperator, split_key_combo
from screenpilot.operators.screen import CaptureStrategy, HookCapture, ScreenOperator


class FailingCapture(CaptureStrategy):
    name = "broken"

    def capture(self):
        raise RuntimeError("no display")


class UnavailableCapture(CaptureStrategy):
    name = "missing"

    def available(self):
        return False

    def capture(self):
        raise AssertionError("never called")


class TestLifecycle:
    def test_initialize_once(self, screen_operator):
        screen_operator.initialize()
        with pytest.raises(OperatorError) as exc:
            screen_operator.initialize()
        assert exc.value.code == "ALREADY_INITIALIZED"

    def test_execute_requires_initialize(self, input_operator):
        with pytest.raises(OperatorError) as exc:
            input_operator.execute(Action(type=ActionType.CLICK, parameters={"x": 1, "y": 1}))
        assert exc.value.code == "NOT_INITIALIZED"

    def test_cleanup_is_idempotent(self, screen_operator):
        screen_operator.initialize()
        screen_operator.cleanup()
        screen_operator.cleanup()
        assert not screen_operator.is_initialized


class TestScreenOperator:
    def test_falls_back_along_the_chain(self, png):
        operator = ScreenOperator(
            strategies=[UnavailableCapture(), FailingCapture(), HookCapture(lambda: png)]
        )
        operator.initialize()
        shot = operator.capture()
        assert (shot.width, shot.height) == (64, 48)
        assert operator.screen_size() == (64, 48)

    def test_exhausted_chain_lists_attempts(self):
        operator = ScreenOperator(strategies=[FailingCapture()])
        operator.initialize()
        with pytest.raises(OperatorError) as exc:
            operator.capture()
        assert exc.value.code == "CAPTURE_FAILED"
        assert exc.value.details["attempts"] == ["broken: no display"]

    def test_no_available_strategy(self):
        with pytest.raises(OperatorError) as exc:
            ScreenOperator(strategies=[UnavailableCapture()]).initialize()
        assert exc.value.code == "BACKEND_UNAVAILABLE"

    def test_unsupported_action_raises(self, screen_operator):
        screen_operator.initialize()
        with pytest.raises(OperatorError) as exc:
            screen_operator.execute(Action(type=ActionType.CLICK, parameters={"x": 1, "y": 1}))
        assert exc.value.code == "UNSUPPORTED_ACTION"

    def test_screenshot_action_attaches_capture(self, screen_operator):
        screen_operator.initialize()
        result = screen_operator.execute(Action(type=ActionType.SCREENSHOT))
        assert result.success
        assert result.screenshot is not None
        assert result.data["width"] == 64


class TestInputOperator:
    def test_click_uses_defaults(self, input_operator, backend):
        input_operator.initialize()
        result = input_operator.execute(
            Action(type=ActionType.CLICK, parameters={"x": 10, "y": 20})
        )
        assert result.success
        assert backend.calls == [("click", 10, 20, "left", 1)]

    def test_double_and_right_click(self, input_operator, backend):
        input_operator.initialize()
        input_operator.execute(Action(type=ActionType.DOUBLE_CLICK, parameters={"x": 1, "y": 2}))
        input_operator.execute(Action(type=ActionType.RIGHT_CLICK, parameters={"x": 3, "y": 4}))
        assert backend.calls == [("click", 1, 2, "left", 2), ("click", 3, 4, "right", 1)]

    def test_missing_required_parameter_is_a_failed_result(self, input_operator, backend):
        input_operator.initialize()
        result = input_operator.execute(Action(type=ActionType.CLICK, parameters={"x": 10}))
        assert not result.success
        assert "Missing required parameter 'y'" in result.error
        assert backend.calls == []

    def test_backend_failure_never_raises(self):
        operator = InputOperator(backends=[RecordingBackend(fail_on="type_text")])
        operator.initialize()
        result = operator.execute(Action(type=ActionType.TYPE, parameters={"text": "hi"}))
        assert not result.success
        assert "exploded" in result.error

    def test_key_combo_and_scroll_defaults(self, input_operator, backend):
        input_operator.initialize()
        input_operator.execute(Action(type=ActionType.KEY, parameters={"key": "Ctrl+Shift+T"}))
        input_operator.execute(Action(type=ActionType.SCROLL, parameters={}))
        assert backend.calls == [
            ("press_key", "t", ["ctrl", "shift"]),
            ("scroll", None, None, "down", 3),
        ]

    def test_capture_always_raises(self, input_operator):
        input_operator.initialize()
        with pytest.raises(OperatorError) as exc:
            input_operator.capture()
        assert exc.value.code == "CAPTURE_UNSUPPORTED"

    def test_no_available_backend(self):
        unavailable = RecordingBackend()
        unavailable.available = lambda: False
        with pytest.raises(OperatorError) as exc:
            InputOperator(backends=[unavailable]).initialize()
        assert exc.value.code == "BACKEND_UNAVAILABLE"

    def test_backend_selected_per_capability(self):
        typing_only = RecordingBackend()
        typing_only.name = "typing"
        typing_only.supported = frozenset({ActionType.TYPE})
        everything = RecordingBackend()
        operator = InputOperator(backends=[typing_only, everything])
        operator.initialize()
        assert operator.backend_for(ActionType.TYPE) is typing_only
        assert operator.backend_for(ActionType.CLICK) is everything

    def test_wait_sleeps_in_milliseconds(self, input_operator):
        input_operator.initialize()
        result = input_operator.execute(Action(type=ActionType.WAIT, parameters={"duration": 10}))
        assert result.success
        assert result.data["duration_ms"] == 10


def test_split_key_combo():
    assert split_key_combo("enter") == ([], "enter")
    assert split_key_combo("cmd+c", ["shift"]) == (["shift", "command"], "c")
    assert split_key_combo("a", "ctrl") == (["ctrl"], "a")


class TestBrowserOperator:
    @pytest.fixture
    def page(self):
        page = MagicMock()
        page.url = "https://example.com/"
        page.title.return_value = "Example"
        page.viewport_size = {"width": 1280, "height": 720}
        page.screenshot.return_value = make_png(1280, 720)
        page.goto.return_value = MagicMock(status=200)
        return page

    @pytest.fixture
    def browser(self, page):
        operator = BrowserOperator(page=page)
        operator.initialize({"timeout": 5000})
        return operator

    def test_navigate_normalizes_url(self, browser, page):
        result = browser.execute(Action(type=ActionType.NAVIGATE, parameters={"url": "example.com"}))
        assert result.success
        page.goto.assert_called_once_with("https://example.com", wait_until="load", timeout=5000)
        assert result.data["url"] == "https://example.com/"
        assert result.data["title"] == "Example"
        assert result.data["status"] == 200

    def test_click_by_selector_or_coordinates(self, browser, page):
        browser.execute(Action(type=ActionType.CLICK, parameters={"selector": "#go"}))
        page.click.assert_called_once_with("#go", button="left", click_count=1)
        browser.execute(Action(type=ActionType.CLICK, parameters={"x": 5, "y": 6}))
        page.mouse.click.assert_called_once_with(5, 6, button="left", click_count=1)

    def test_click_without_target_fails(self, browser):
        result = browser.execute(Action(type=ActionType.CLICK, parameters={}))
        assert not result.success

    def test_type_into_selector_fills(self, browser, page):
        browser.execute(Action(type=ActionType.TYPE, parameters={"text": "hi", "selector": "#q"}))
        page.fill.assert_called_once_with("#q", "hi")

    def test_scroll_uses_amount(self, browser, page):
        browser.execute(Action(type=ActionType.SCROLL, parameters={"direction": "up"}))
        page.mouse.wheel.assert_called_once_with(0, -500)

    def test_key_maps_names(self, browser, page):
        browser.execute(Action(type=ActionType.KEY, parameters={"key": "ctrl+enter"}))
        page.keyboard.press.assert_called_once_with("Control+Enter")

    def test_wait_for_selector_uses_default_timeout(self, browser, page):
        browser.execute(Action(type=ActionType.WAIT, parameters={"selector": ".ready"}))
        page.wait_for_selector.assert_called_once_with(".ready", state="visible", timeout=30000)

    def test_capture_and_queries(self, browser, page):
        shot = browser.capture()
        assert (shot.width, shot.height) == (1280, 720)
        assert browser.screen_size() == (1280, 720)
        assert browser.get_current_url() == "https://example.com/"
        assert browser.get_page_title() == "Example"

    def test_attached_page_survives_cleanup(self, browser, page):
        browser.cleanup()
        page.close.assert_not_called()
        assert not browser.is_initialized

    def test_helpers(self):
        assert normalize_url(" about:blank ") == "about:blank"
        assert normalize_url("http://a.com") == "http://a.com"
        assert playwright_key("f5") == "F5"
        assert playwright_key("a") == "a"
