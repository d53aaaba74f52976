"""
Event bus for billprint.

Sandboxes publish their ready and load-failed signals here, tagged with
the sandbox id; print jobs publish state changes, status messages and
timeouts for the UI.
"""

from dataclasses import dataclass, field
from typing import Any, Callable
from enum import Enum, auto
import logging
import time
from collections import defaultdict, deque

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types carried by the bus."""
    # Sandbox signals
    SANDBOX_READY = auto()
    SANDBOX_LOAD_FAILED = auto()

    # Job events
    JOB_STATE_CHANGED = auto()
    PRINT_STATUS = auto()
    PRINT_TIMEOUT = auto()

    # Update-check status, published by the shell
    UPDATE_STATUS = auto()


@dataclass
class Event:
    """
    One published event.

    Attributes:
        type: Event type
        data: Event payload
        source: Component that emitted the event
        timestamp: When the event was created
    """
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    source: str = "system"
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[Event], None]


class EventBus:
    """
    Synchronous publish/subscribe hub on the event loop thread.

    Handlers run in subscription order inside ``emit``. A failing handler
    is logged and does not stop the others. The last events are kept for
    inspection.
    """

    def __init__(self, history_limit: int = 100) -> None:
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)
        self._history: deque[Event] = deque(maxlen=history_limit)

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """
        Subscribe to an event type.

        Returns:
            Function that removes the subscription (safe to call twice)
        """
        handlers = self._handlers[event_type]
        handlers.append(handler)
        logger.debug(f"Handler subscribed to {event_type.name}")

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)
                logger.debug(f"Handler unsubscribed from {event_type.name}")

        return unsubscribe

    def handler_count(self, event_type: EventType) -> int:
        """Number of handlers currently subscribed to an event type."""
        return len(self._handlers.get(event_type, ()))

    def emit(self, event: Event) -> None:
        """Record the event and call its handlers."""
        self._history.append(event)
        # Snapshot: a handler may unsubscribe itself
        for handler in tuple(self._handlers.get(event.type, ())):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in {event.type.name} handler: {e}")

    def get_history(self, event_type: EventType | None = None, limit: int = 10) -> list[Event]:
        """Most recent events, oldest first, optionally of one type."""
        events = [e for e in self._history if event_type is None or e.type == event_type]
        return events[-limit:]


def print_status_event(success: bool, message: str, source: str = "print_job") -> Event:
    """Create a print status event for the UI."""
    return Event(
        EventType.PRINT_STATUS,
        data={"success": success, "message": message},
        source=source,
    )


def sandbox_ready_event(
    sandbox_id: str,
    kind: str | None = None,
    payload: Any = None,
) -> Event:
    """Create a readiness signal for one sandbox."""
    return Event(
        EventType.SANDBOX_READY,
        data={"sandbox_id": sandbox_id, "kind": kind, "payload": payload},
        source="sandbox",
    )


def sandbox_load_failed_event(sandbox_id: str, reason: str) -> Event:
    """Create a load failure signal for one sandbox."""
    return Event(
        EventType.SANDBOX_LOAD_FAILED,
        data={"sandbox_id": sandbox_id, "reason": reason},
        source="sandbox",
    )
