"""
Services module - host-side management of running agents.
"""

from .agent_manager import AgentManager, ManagedAgent, get_agent_manager

__all__ = [
    "AgentManager",
    "ManagedAgent",
    "get_agent_manager",
]
