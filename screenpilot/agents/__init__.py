"""
Agents - orchestrators running the perceive-analyze-act loop.
"""

from typing import Any

from ..models import AgentConfig, OperatorType
from ..registry import Registry
from .base_agent import BaseAgent
from .browser_agent import WebBrowserAgent
from .continuation import should_continue
from .hybrid_agent import HybridAgent
from .local_agent import LocalComputerAgent
from .mode_policy import KeywordModePolicy, ModePolicy

AGENTS: Registry[BaseAgent] = Registry("agent type")
AGENTS.register(OperatorType.LOCAL_COMPUTER, LocalComputerAgent)
AGENTS.register(OperatorType.WEB_BROWSER, WebBrowserAgent)
AGENTS.register(OperatorType.HYBRID, HybridAgent)


def create_agent(config: AgentConfig, initialize: bool = True, **kwargs: Any) -> BaseAgent:
    """
    Create the agent variant matching config.operator.type.

    Args:
        config: Agent configuration
        initialize: Initialize the agent before returning it
        **kwargs: Passed to the agent constructor (session_manager, model, ...)
    """
    agent = AGENTS.create(config.operator.type, **kwargs)
    if initialize:
        agent.initialize(config)
    return agent


__all__ = [
    "BaseAgent",
    "LocalComputerAgent",
    "WebBrowserAgent",
    "HybridAgent",
    "ModePolicy",
    "KeywordModePolicy",
    "should_continue",
    "AGENTS",
    "create_agent",
]
