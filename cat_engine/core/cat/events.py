"""
Lifecycle events published by the CAT engine.

Each engine owns one EventBus. Events are delivered synchronously, in
subscription order, on the thread that caused them. Session-scoped events are
published while the session lock is held, so a single session's events
always arrive in causal order.

A listener that raises does not affect the engine or the other listeners:
the exception is logged and reported to error tracking.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from cat_engine.core.cat.session import CATSession
from cat_engine.core.datetime_utils import utc_now
from libs.domain_types import CATEventType
from libs.observability import observability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CATEvent:
    """
    A lifecycle notification.

    Attributes:
        type: What happened.
        session: Deep-copied snapshot of the session, for session-scoped
            events; None for engine-wide events.
        payload: Event-specific data, e.g. {"item_id": ...} for item_selected
            or {"reason": ...} for session_terminated.
        timestamp: When the event was published (UTC).
    """

    type: CATEventType
    session: Optional[CATSession] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session is not None else None


EventListener = Callable[[CATEvent], None]


class EventBus:
    """Synchronous observer list."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> bool:
        """
        Remove a listener.

        Returns:
            True if the listener was subscribed, False otherwise.
        """
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: CATEvent) -> None:
        """Deliver an event to every listener subscribed at publish time."""
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"CAT event listener failed for {event.type.value}: {e}",
                    extra={"event_type": event.type.value},
                    exc_info=True,
                )
                observability.capture_error(
                    e,
                    context={
                        "event_type": event.type.value,
                        "session_id": event.session_id,
                    },
                    level="warning",
                    tags={"component": "cat_event_bus"},
                )
