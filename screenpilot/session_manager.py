"""
Session Manager - in-memory registry of agent runs.
"""

import json
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from logger import logger

from .models import (
    ActionResult,
    Session,
    SessionStats,
    SessionStatus,
    SessionSummary,
    short_id,
)

# Fields update_session may change
UPDATABLE_FIELDS = {"instruction", "status", "end_time", "results", "error", "metadata"}


class SessionManager:
    """
    Thread-safe registry of Sessions keyed by id.

    The most recently created session is "current" until it is completed
    or cancelled. Stats are derived from the result log on every call.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._current_id: Optional[str] = None
        self._lock = threading.RLock()

    def create_session(self, instruction: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        session = Session(instruction=instruction, metadata=dict(metadata or {}))
        with self._lock:
            self._sessions[session.id] = session
            self._current_id = session.id
        logger.info(f"[SESSION] Created {session.id}: {instruction[:80]}")
        return session.id

    def update_session(self, session_id: str, **fields: Any) -> Session:
        """
        Merge fields into a session. Stamps end_time on a terminal status.

        Raises:
            KeyError: if the session does not exist
            ValueError: if a field is not updatable
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

        with self._lock:
            session = self._require(session_id)
            if "status" in fields:
                fields["status"] = SessionStatus(fields["status"])
            updated = session.model_copy(update=fields)
            if updated.status != SessionStatus.RUNNING and updated.end_time is None:
                updated.end_time = max(datetime.now(), updated.start_time)
            self._sessions[session_id] = updated
        return updated

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_current_session(self) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(self._current_id) if self._current_id else None

    def get_all_sessions(self) -> List[Session]:
        """All sessions, newest first."""
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def get_session_history(self, limit: int = 10) -> List[Session]:
        """Finished sessions, newest first."""
        return [s for s in self.get_all_sessions() if s.is_terminal][:limit]

    def add_result(self, session_id: str, result: ActionResult) -> None:
        with self._lock:
            session = self._require(session_id)
            session.results.append(result)

    def complete_session(self, session_id: str, error: Optional[str] = None) -> Session:
        """Finish a session as completed (or error when an error message is given)."""
        status = SessionStatus.ERROR if error else SessionStatus.COMPLETED
        with self._lock:
            session = self.update_session(session_id, status=status, error=error)
            if self._current_id == session_id:
                self._current_id = None
        logger.info(f"[SESSION] {session_id} {status.value}")
        return session

    def cancel_session(self, session_id: str) -> Session:
        with self._lock:
            session = self.update_session(session_id, status=SessionStatus.CANCELLED)
            if self._current_id == session_id:
                self._current_id = None
        logger.info(f"[SESSION] {session_id} cancelled")
        return session

    def get_session_stats(self, session_id: str) -> Optional[SessionStats]:
        session = self.get_session(session_id)
        if session is None:
            return None

        actions = [r for r in session.results if not r.meta]
        successful = sum(1 for r in actions if r.success)
        end = session.end_time or datetime.now()
        return SessionStats(
            duration_seconds=(end - session.start_time).total_seconds(),
            total_actions=len(actions),
            successful_actions=successful,
            failed_actions=len(actions) - successful,
            success_rate=successful / len(actions) if actions else 0.0,
        )

    def export_session(self, session_id: str) -> str:
        """Serialize a session to JSON. Raw screenshots are not exported."""
        with self._lock:
            session = self._require(session_id)
            return session.model_dump_json(
                indent=2, exclude={"results": {"__all__": {"screenshot"}}}
            )

    def import_session(self, session_data: str) -> str:
        """
        Load an exported session under a new id.

        Raises:
            ValueError: if the data is not a valid session export
        """
        try:
            payload = json.loads(session_data)
            payload["id"] = f"imported-{short_id()}"
            session = Session.model_validate(payload)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Failed to import session: {e}") from e

        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"[SESSION] Imported {session.id}")
        return session.id

    def clear_old_sessions(self, max_age: timedelta = timedelta(hours=24)) -> int:
        """Remove finished sessions started before now - max_age. Running sessions are kept."""
        cutoff = datetime.now() - max_age
        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if s.is_terminal and s.start_time < cutoff
            ]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info(f"[SESSION] Cleared {len(stale)} old sessions")
        return len(stale)

    def get_session_summary(self) -> SessionSummary:
        summary = SessionSummary()
        for session in self.get_all_sessions():
            summary.total += 1
            setattr(summary, session.status.value, getattr(summary, session.status.value) + 1)
        return summary

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session not found: {session_id}")
        return session
