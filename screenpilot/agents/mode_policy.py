"""
Mode policy - picks the control surface (desktop or browser) for a hybrid agent.
"""

from abc import ABC, abstractmethod
from typing import Tuple

from ..models import Action, ActionType, AgentMode, is_number

WEB_KEYWORDS: Tuple[str, ...] = (
    "website",
    "browser",
    "url",
    "http",
    "www",
    "search online",
    "web page",
    "navigate to",
)

DESKTOP_KEYWORDS: Tuple[str, ...] = (
    "file",
    "folder",
    "desktop",
    "application",
    "window",
    "system",
)


class ModePolicy(ABC):
    """Decides which surface an instruction starts on and each action targets."""

    @abstractmethod
    def determine_initial_mode(self, instruction: str) -> AgentMode:
        pass

    @abstractmethod
    def mode_for_action(self, action: Action, current: AgentMode) -> AgentMode:
        pass


class KeywordModePolicy(ModePolicy):
    """
    Keyword heuristic.

    The initial mode is browser when web keywords outnumber desktop keywords
    in the instruction. Per action, navigate or a selector/url parameter
    means browser and numeric x/y means desktop; anything else keeps the
    current mode.
    """

    def __init__(
        self,
        web_keywords: Tuple[str, ...] = WEB_KEYWORDS,
        desktop_keywords: Tuple[str, ...] = DESKTOP_KEYWORDS,
    ):
        self.web_keywords = web_keywords
        self.desktop_keywords = desktop_keywords

    def determine_initial_mode(self, instruction: str) -> AgentMode:
        text = (instruction or "").lower()
        web_score = sum(1 for keyword in self.web_keywords if keyword in text)
        desktop_score = sum(1 for keyword in self.desktop_keywords if keyword in text)
        return AgentMode.BROWSER if web_score > desktop_score else AgentMode.DESKTOP

    def mode_for_action(self, action: Action, current: AgentMode) -> AgentMode:
        params = action.parameters
        if action.type == ActionType.NAVIGATE or params.get("selector") or params.get("url"):
            return AgentMode.BROWSER
        if is_number(params.get("x")) and is_number(params.get("y")):
            return AgentMode.DESKTOP
        return current
