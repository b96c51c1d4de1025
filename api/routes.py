"""
API Routes - FastAPI endpoint definitions.
"""

from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from config import config
from logger import logger
from screenpilot.errors import AgentError
from services.agent_manager import get_agent_manager

from .models import (
    AgentListResponse,
    AgentResponse,
    CreateAgentRequest,
    EventListResponse,
    ExecuteRequest,
    SessionListResponse,
    UpdateConfigRequest,
)

router = APIRouter()

NO_SCREENSHOTS = {"results": {"__all__": {"screenshot"}}}


def _failure(e: AgentError, agent_id: Optional[str] = None) -> dict:
    if e.code == "AGENT_NOT_FOUND":
        raise HTTPException(status_code=404, detail=e.message)
    logger.warning(f"[API] {e}")
    return {"success": False, "message": e.message, "agent_id": agent_id, "data": e.to_dict()}


@router.get("/")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "message": "ScreenPilot is running"}


@router.get("/agents", response_model=AgentListResponse)
def list_agents():
    return {"agents": get_agent_manager().list_status()}


@router.post("/agents", response_model=AgentResponse)
def create_agent(body: CreateAgentRequest):
    """Create and initialize an agent from the settings file."""
    try:
        agent_config = config.build_agent_config(
            body.operator_type.value,
            provider=body.provider.value if body.provider else None,
            model_name=body.model_name,
            name=body.name,
            overrides=body.settings,
        )
    except ValidationError as e:
        return _failure(AgentError(f"Invalid configuration: {e}", code="INVALID_CONFIG"))
    try:
        agent_id = get_agent_manager().create_agent(agent_config)
    except AgentError as e:
        return _failure(e)
    return {"success": True, "message": "Agent created", "agent_id": agent_id}


@router.get("/agents/{agent_id}", response_model=AgentResponse)
def get_agent_status(agent_id: str):
    try:
        status = get_agent_manager().get_status(agent_id)
    except AgentError as e:
        return _failure(e, agent_id)
    return {"success": True, "message": "agent status", "agent_id": agent_id, "data": status}


@router.get("/agents/{agent_id}/config", response_model=AgentResponse)
def get_agent_config(agent_id: str):
    try:
        agent_config = get_agent_manager().get_agent(agent_id).get_config()
    except AgentError as e:
        return _failure(e, agent_id)
    return {
        "success": True,
        "message": "agent config",
        "agent_id": agent_id,
        "data": agent_config.model_dump(mode="json", exclude={"model": {"api_key"}}),
    }


@router.patch("/agents/{agent_id}/config", response_model=AgentResponse)
def update_agent_config(agent_id: str, body: UpdateConfigRequest):
    try:
        updated = get_agent_manager().get_agent(agent_id).update_config(body.config)
    except AgentError as e:
        return _failure(e, agent_id)
    return {
        "success": True,
        "message": "agent config updated",
        "agent_id": agent_id,
        "data": updated.model_dump(mode="json", exclude={"model": {"api_key"}}),
    }


@router.post("/agents/{agent_id}/execute", response_model=AgentResponse)
def execute(agent_id: str, body: ExecuteRequest):
    """Start a run (non-blocking)."""
    try:
        get_agent_manager().execute(agent_id, body.instruction, body.callback_url)
    except AgentError as e:
        return _failure(e, agent_id)
    return {"success": True, "message": "Execution started", "agent_id": agent_id}


@router.post("/agents/{agent_id}/pause", response_model=AgentResponse)
def pause(agent_id: str):
    try:
        get_agent_manager().pause(agent_id)
    except AgentError as e:
        return _failure(e, agent_id)
    return {"success": True, "message": "Agent paused", "agent_id": agent_id}


@router.post("/agents/{agent_id}/resume", response_model=AgentResponse)
def resume(agent_id: str):
    try:
        get_agent_manager().resume(agent_id)
    except AgentError as e:
        return _failure(e, agent_id)
    return {"success": True, "message": "Agent resumed", "agent_id": agent_id}


@router.post("/agents/{agent_id}/cancel", response_model=AgentResponse)
def cancel(agent_id: str):
    try:
        get_agent_manager().cancel(agent_id)
    except AgentError as e:
        return _failure(e, agent_id)
    return {"success": True, "message": "Cancel requested", "agent_id": agent_id}


@router.delete("/agents/{agent_id}", response_model=AgentResponse)
def stop(agent_id: str):
    """Stop an agent and release its resources."""
    try:
        get_agent_manager().stop(agent_id)
    except AgentError as e:
        return _failure(e, agent_id)
    except FutureTimeoutError:
        return {"success": False, "message": "Timed out waiting for the agent to stop", "agent_id": agent_id}
    return {"success": True, "message": "Agent stopped", "agent_id": agent_id}


@router.get("/agents/{agent_id}/results", response_model=AgentResponse)
def get_results(agent_id: str):
    try:
        results = get_agent_manager().get_results(agent_id)
    except AgentError as e:
        return _failure(e, agent_id)
    return {
        "success": True,
        "message": f"{len(results)} results",
        "agent_id": agent_id,
        "data": {"results": [r.model_dump(mode="json", exclude={"screenshot"}) for r in results]},
    }


@router.get("/agents/{agent_id}/events", response_model=EventListResponse)
def get_events(agent_id: str, limit: int = 50):
    try:
        events = get_agent_manager().get_events(agent_id, limit)
    except AgentError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"agent_id": agent_id, "events": [event.model_dump(mode="json") for event in events]}


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(limit: int = 20):
    manager = get_agent_manager()
    sessions = manager.get_sessions(limit)
    return {
        "sessions": [s.model_dump(mode="json", exclude=NO_SCREENSHOTS) for s in sessions],
        "summary": manager.session_manager.get_session_summary().model_dump(),
    }


@router.get("/sessions/{session_id}")
def get_session(session_id: str):
    session_manager = get_agent_manager().session_manager
    session = session_manager.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    stats = session_manager.get_session_stats(session_id)
    return {
        "session": session.model_dump(mode="json", exclude=NO_SCREENSHOTS),
        "stats": stats.model_dump() if stats else None,
    }
