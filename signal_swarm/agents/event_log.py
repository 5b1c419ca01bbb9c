"""
Bounded pipeline event log.

Owned by a PipelineCoordinator instance. Appends and reads are serialized by
a single lock so concurrent runs (or threads reading for a dashboard) never
observe a torn buffer. The oldest event is evicted once capacity is reached.
"""
import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from .schemas import PipelineEvent, EventSeverity

logger = logging.getLogger("signal_swarm.events")

EventCallback = Callable[[PipelineEvent], None]

_LOG_LEVELS = {
    EventSeverity.INFO: logging.INFO,
    EventSeverity.SUCCESS: logging.INFO,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.ERROR: logging.ERROR,
}


class EventLog:
    """Thread-safe ring buffer of PipelineEvents with sequence ids."""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._events: Deque[PipelineEvent] = deque(maxlen=capacity)
        self._next_id = 1
        self._lock = threading.Lock()
        self._subscribers: List[EventCallback] = []

    def append(
        self,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        data: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> PipelineEvent:
        with self._lock:
            event = PipelineEvent(
                id=self._next_id,
                message=message,
                severity=severity,
                data=data,
                run_id=run_id,
            )
            self._next_id += 1
            self._events.append(event)
            subscribers = list(self._subscribers)

        logger.log(_LOG_LEVELS.get(severity, logging.INFO), message)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event subscriber failed: {e}", exc_info=True)

        return event

    def get_events(self, after_id: Optional[int] = None) -> List[PipelineEvent]:
        """Snapshot of buffered events, optionally only those newer than after_id."""
        with self._lock:
            events = list(self._events)
        if after_id is None:
            return events
        return [e for e in events if e.id > after_id]

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def last_id(self) -> int:
        with self._lock:
            return self._next_id - 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
