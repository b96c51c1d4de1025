"""
Agent Manager - host-side registry of agents running in the background.

Each agent lives on its own single worker thread: initialize, execute and
stop are all submitted to that thread so browser objects never cross threads.
Pause, resume and cancel are thread-safe and called directly.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from logger import logger
from screenpilot.agents import AGENTS, BaseAgent
from screenpilot.errors import AgentError
from screenpilot.events import AgentEvent
from screenpilot.models import ActionResult, AgentConfig, Session
from screenpilot.session_manager import SessionManager


class ManagedAgent:
    """An agent plus its worker thread and the outcome of its last run."""

    def __init__(self, agent: BaseAgent):
        self.agent = agent
        self.worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="agent")
        self.future: Optional[Future] = None
        self.created_at = datetime.now()
        self.last_instruction: Optional[str] = None
        self.last_results: List[ActionResult] = []
        self.last_error: Optional[str] = None
        self.last_session_id: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.future is not None and not self.future.done()

    def call(self, fn, *args, timeout: Optional[float] = None):
        """Run fn on the worker thread and wait for its result."""
        return self.worker.submit(fn, *args).result(timeout=timeout)


class AgentManager:
    """Creates, runs and stops agents for a host process."""

    def __init__(
        self,
        session_manager: Optional[SessionManager] = None,
        init_timeout: float = 120.0,
        stop_timeout: float = 60.0,
    ):
        self.session_manager = session_manager or SessionManager()
        self.init_timeout = init_timeout
        self.stop_timeout = stop_timeout
        self._agents: Dict[str, ManagedAgent] = {}
        self._lock = threading.Lock()

    # --- Lifecycle ---

    def create_agent(self, config: AgentConfig, **kwargs: Any) -> str:
        """
        Create and initialize an agent for config.operator.type.

        Args:
            config: Agent configuration
            **kwargs: Passed to the agent constructor (model, operators, ...)

        Returns:
            The agent id

        Raises:
            AgentError: if initialization fails
        """
        kwargs.setdefault("session_manager", self.session_manager)
        agent = AGENTS.create(config.operator.type, **kwargs)
        managed = ManagedAgent(agent)

        try:
            managed.call(agent.initialize, config, timeout=self.init_timeout)
        except Exception:
            managed.worker.shutdown(wait=False)
            raise

        with self._lock:
            self._agents[agent.id] = managed
        logger.info(f"[AGENT] Registered {agent.name} ({agent.id})")
        return agent.id

    def execute(
        self,
        agent_id: str,
        instruction: str,
        callback_url: Optional[str] = None,
    ) -> Future:
        """
        Start a run in the background.

        Args:
            agent_id: Agent to run
            instruction: Task for the agent
            callback_url: Optional URL receiving the final result as JSON

        Returns:
            Future resolving to the run's ActionResults

        Raises:
            AgentError: if the agent is unknown or already running
        """
        managed = self._get(agent_id)
        with self._lock:
            if managed.busy:
                raise AgentError(
                    f"Agent {agent_id} is already executing a task", code="ALREADY_RUNNING"
                )
            managed.last_instruction = instruction
            managed.future = managed.worker.submit(
                self._run, managed, instruction, callback_url
            )
        logger.info(f"[AGENT] {agent_id} started: {instruction[:80]}")
        return managed.future

    def _run(
        self, managed: ManagedAgent, instruction: str, callback_url: Optional[str]
    ) -> List[ActionResult]:
        try:
            results = managed.agent.execute(instruction)
            managed.last_results = results
            managed.last_error = None
        except AgentError as e:
            managed.last_results = e.results
            managed.last_error = str(e)
        managed.last_session_id = managed.agent.current_session_id

        if callback_url:
            self._send_callback(callback_url, managed)
        return managed.last_results

    def pause(self, agent_id: str) -> None:
        self._get(agent_id).agent.pause()

    def resume(self, agent_id: str) -> None:
        self._get(agent_id).agent.resume()

    def cancel(self, agent_id: str) -> None:
        """Cancel the current run; the agent stays usable."""
        self._get(agent_id).agent.cancel()

    def stop(self, agent_id: str) -> None:
        """Stop an agent, release its resources and forget it."""
        managed = self._get(agent_id)
        managed.agent.cancel()
        try:
            managed.call(managed.agent.stop, timeout=self.stop_timeout)
        finally:
            managed.worker.shutdown(wait=False)
            with self._lock:
                self._agents.pop(agent_id, None)
        logger.info(f"[AGENT] {agent_id} stopped and removed")

    def stop_all(self) -> None:
        for agent_id in self.list_agent_ids():
            try:
                self.stop(agent_id)
            except Exception as e:
                logger.error(f"[AGENT] Failed to stop {agent_id}: {e}")

    # --- Queries ---

    def list_agent_ids(self) -> List[str]:
        with self._lock:
            return list(self._agents)

    def get_agent(self, agent_id: str) -> BaseAgent:
        return self._get(agent_id).agent

    def get_status(self, agent_id: str) -> Dict[str, Any]:
        managed = self._get(agent_id)
        status = managed.agent.get_status()
        status.update(
            {
                "busy": managed.busy,
                "created_at": managed.created_at.isoformat(),
                "last_instruction": managed.last_instruction,
                "last_error": managed.last_error,
                "last_session_id": managed.last_session_id,
                "last_result_count": len(managed.last_results),
            }
        )
        return status

    def list_status(self) -> List[Dict[str, Any]]:
        return [self.get_status(agent_id) for agent_id in self.list_agent_ids()]

    def get_results(self, agent_id: str) -> List[ActionResult]:
        return list(self._get(agent_id).last_results)

    def get_events(self, agent_id: str, limit: Optional[int] = None) -> List[AgentEvent]:
        return self._get(agent_id).agent.events.recent(limit)

    def get_sessions(self, limit: Optional[int] = None) -> List[Session]:
        sessions = self.session_manager.get_all_sessions()
        return sessions[:limit] if limit else sessions

    def _get(self, agent_id: str) -> ManagedAgent:
        with self._lock:
            managed = self._agents.get(agent_id)
        if managed is None:
            raise AgentError(f"Agent not found: {agent_id}", code="AGENT_NOT_FOUND")
        return managed

    def _send_callback(self, callback_url: str, managed: ManagedAgent) -> None:
        """Send the final result to the callback URL."""
        session_id = managed.last_session_id
        stats = self.session_manager.get_session_stats(session_id) if session_id else None
        try:
            payload = {
                "agent_id": managed.agent.id,
                "session_id": session_id,
                "instruction": managed.last_instruction,
                "status": managed.agent.status.value,
                "error": managed.last_error,
                "stats": stats.model_dump() if stats else None,
                "results": [
                    result.model_dump(mode="json", exclude={"screenshot"})
                    for result in managed.last_results
                ],
            }
            requests.post(callback_url, json=payload, timeout=10)
            logger.info(f"[AGENT] Callback sent to {callback_url}")
        except requests.RequestException as e:
            logger.warning(f"[AGENT] Failed to send callback: {e}")


# Singleton instance
_manager_instance: Optional[AgentManager] = None


def get_agent_manager() -> AgentManager:
    """Get or create singleton AgentManager instance."""
    global _manager_instance
    if _manager_instance is None:
        _manager_instance = AgentManager()
    return _manager_instance
