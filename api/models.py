"""
API Models - Pydantic request/response models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from screenpilot.models import ModelProvider, OperatorType


class CreateAgentRequest(BaseModel):
    """Request model for creating an agent from the settings file."""

    operator_type: OperatorType = OperatorType.LOCAL_COMPUTER
    provider: Optional[ModelProvider] = None
    model_name: Optional[str] = None
    name: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None  # AgentSettings overrides, e.g. {"max_iterations": 5}


class ExecuteRequest(BaseModel):
    """Request model for starting a run."""

    instruction: str
    callback_url: Optional[str] = None


class UpdateConfigRequest(BaseModel):
    """Partial AgentConfig, merged into the agent's current config."""

    config: Dict[str, Any]


class AgentResponse(BaseModel):
    """Response model for agent endpoints."""

    success: bool
    message: str
    agent_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class AgentListResponse(BaseModel):
    agents: List[Dict[str, Any]]


class EventListResponse(BaseModel):
    agent_id: str
    events: List[Dict[str, Any]]


class SessionListResponse(BaseModel):
    sessions: List[Dict[str, Any]]
    summary: Dict[str, int]
