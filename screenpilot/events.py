"""
Agent events - typed observability channel consumed by hosts.
"""

import threading
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from logger import logger


class EventType(str, Enum):
    STATUS_CHANGED = "status-changed"
    EXECUTION_STARTED = "execution-started"
    EXECUTION_COMPLETED = "execution-completed"
    ITERATION_STARTED = "iteration-started"
    ITERATION_COMPLETED = "iteration-completed"
    SCREENSHOT_CAPTURED = "screenshot-captured"
    ANALYSIS_COMPLETED = "analysis-completed"
    ACTION_STARTED = "action-started"
    ACTION_COMPLETED = "action-completed"
    MODE_SWITCHED = "mode-switched"
    NAVIGATION_COMPLETED = "navigation-completed"
    USER_INPUT_REQUESTED = "user-input-requested"
    MAX_ITERATIONS_REACHED = "max-iterations-reached"
    ERROR = "error"


class AgentEvent(BaseModel):
    type: EventType
    agent_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


EventListener = Callable[[AgentEvent], None]


class EventBus:
    """
    Delivers AgentEvents to subscribed callbacks.

    Every event is logged and kept in a bounded history, so events are
    observable even when nobody subscribed. A failing listener is logged
    and skipped; it never breaks the emitting loop.
    """

    def __init__(self, agent_id: str, history_size: int = 200):
        self.agent_id = agent_id
        self._listeners: List[Tuple[EventListener, Optional[frozenset]]] = []
        self._history: Deque[AgentEvent] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(
        self,
        listener: EventListener,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> Callable[[], None]:
        """
        Register a listener, optionally for a subset of event types.

        Returns:
            A function that removes the listener
        """
        entry = (listener, frozenset(event_types) if event_types else None)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event_type: EventType, **payload: Any) -> AgentEvent:
        event = AgentEvent(type=event_type, agent_id=self.agent_id, payload=payload)
        with self._lock:
            self._history.append(event)
            listeners = list(self._listeners)

        logger.debug(f"[EVENT] {self.agent_id} {event_type.value}")

        for listener, types in listeners:
            if types is not None and event_type not in types:
                continue
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    f"[EVENT] Listener failed on {event_type.value}: {e}", exc_info=True
                )
        return event

    def recent(self, limit: Optional[int] = None) -> List[AgentEvent]:
        with self._lock:
            events = list(self._history)
        return events[-limit:] if limit else events

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)
