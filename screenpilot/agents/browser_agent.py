"""
Web Browser Agent - drives a Chromium page through the BrowserOperator.
"""

import re
from typing import Any, Dict, Optional

from logger import logger

from ..events import EventType
from ..models import Action, ActionResult, ActionType, ExecutionContext, OperatorType, Screenshot
from ..operators.base import BaseOperator
from ..operators.browser import BrowserOperator
from .base_agent import BaseAgent

URL_PATTERN = re.compile(r"https?://[^\s]+")


def extract_url(instruction: str) -> Optional[str]:
    """First http(s) URL in the instruction, without trailing punctuation."""
    match = URL_PATTERN.search(instruction or "")
    if not match:
        return None
    return match.group(0).rstrip(".,;:!?)\"'")


class WebBrowserAgent(BaseAgent):
    """
    Browser agent. Opens the URL named in the instruction before the first
    iteration and reports the current page in the model's context.
    """

    operator_type = OperatorType.WEB_BROWSER
    default_settings = {"max_iterations": 15, "iteration_delay": 2.0}

    def __init__(self, browser_operator: Optional[BrowserOperator] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._provided_browser = browser_operator
        self.browser_operator: Optional[BrowserOperator] = None

    def on_initialize(self) -> None:
        super().on_initialize()
        self.browser_operator = self._provided_browser or BrowserOperator()
        self.browser_operator.control = self.control
        self.browser_operator.initialize(self.config.operator.settings)

    def on_stop(self) -> None:
        if self.browser_operator is not None:
            self.browser_operator.cleanup()
            self.browser_operator = None
        super().on_stop()

    def operators(self) -> Dict[str, BaseOperator]:
        return {"browser": self.browser_operator} if self.browser_operator else {}

    def _prepare_run(self, instruction: str, context: ExecutionContext) -> None:
        url = extract_url(instruction)
        if url:
            logger.info(f"[BROWSER] Instruction names {url}, opening it first")
            self.navigate_to_url(url)

    def _capture_state(self) -> Screenshot:
        return self.browser_operator.capture()

    def _dispatch(self, action: Action) -> ActionResult:
        result = self.browser_operator.execute(action)
        if action.type == ActionType.NAVIGATE and result.success:
            self.events.emit(
                EventType.NAVIGATION_COMPLETED,
                url=result.data.get("url"),
                title=result.data.get("title"),
            )
        return result

    def _environment(self) -> Dict[str, Any]:
        return {
            "mode": "browser",
            "current_url": self.browser_operator.get_current_url(),
            "page_title": self.browser_operator.get_page_title(),
        }

    def navigate_to_url(self, url: str) -> ActionResult:
        """
        Open a URL outside of the model's plan.

        Raises:
            AgentError: if the agent is not initialized
        """
        self._ensure_initialized()
        result = self._dispatch(Action(type=ActionType.NAVIGATE, parameters={"url": url}))
        if not result.success:
            logger.warning(f"[BROWSER] Navigation to {url} failed: {result.error}")
        return result

    def get_page_info(self) -> Dict[str, Any]:
        self._ensure_initialized()
        return {
            "url": self.browser_operator.get_current_url(),
            "title": self.browser_operator.get_page_title(),
            "viewport": self.browser_operator.screen_size(),
        }

    def take_screenshot(self) -> Screenshot:
        self._ensure_initialized()
        return self.browser_operator.capture()
