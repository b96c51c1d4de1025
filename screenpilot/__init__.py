"""
ScreenPilot - vision-guided automation agents for the desktop and the browser.

Usage:
    from config import config
    from screenpilot import create_agent

    agent = create_agent(config.build_agent_config("hybrid"))
    results = agent.execute("Open https://example.com and read the headline")
    agent.stop()
"""

from .action_executor import ActionExecutor, ExecutionResult
from .agents import (
    BaseAgent,
    HybridAgent,
    KeywordModePolicy,
    LocalComputerAgent,
    ModePolicy,
    WebBrowserAgent,
    create_agent,
)
from .errors import AgentError, ModelError, OperatorError, ScreenPilotError
from .events import AgentEvent, EventBus, EventType
from .models import (
    Action,
    ActionResult,
    ActionType,
    AgentConfig,
    AgentMode,
    AgentSettings,
    AgentStatus,
    ContinuationSettings,
    ExecutionContext,
    ModelConfig,
    ModelProvider,
    ModelResponse,
    OperatorConfig,
    OperatorType,
    Screenshot,
    Session,
    SessionStatus,
)
from .session_manager import SessionManager

__version__ = "0.1.0"

__all__ = [
    "ActionExecutor",
    "ExecutionResult",
    "BaseAgent",
    "LocalComputerAgent",
    "WebBrowserAgent",
    "HybridAgent",
    "ModePolicy",
    "KeywordModePolicy",
    "create_agent",
    "ScreenPilotError",
    "AgentError",
    "OperatorError",
    "ModelError",
    "AgentEvent",
    "EventBus",
    "EventType",
    "Action",
    "ActionResult",
    "ActionType",
    "AgentConfig",
    "AgentMode",
    "AgentSettings",
    "AgentStatus",
    "ContinuationSettings",
    "ExecutionContext",
    "ModelConfig",
    "ModelProvider",
    "ModelResponse",
    "OperatorConfig",
    "OperatorType",
    "Screenshot",
    "Session",
    "SessionStatus",
    "SessionManager",
]
