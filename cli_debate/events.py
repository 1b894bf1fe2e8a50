"""In-process event bus: orchestrators publish lifecycle events, listeners observe."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    DEBATE_START = "debate:start"
    DEBATE_END = "debate:end"
    PHASE_START = "phase:start"
    PHASE_END = "phase:end"
    ROUND_START = "round:start"
    ROUND_END = "round:end"
    MESSAGE_START = "message:start"
    MESSAGE_CHUNK = "message:chunk"
    MESSAGE_END = "message:end"
    ERROR = "error"


@dataclass(frozen=True)
class DebateEvent:
    type: EventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)


Listener = Callable[[DebateEvent], None]


class EventBus:
    """Synchronous publish/subscribe.

    Every emitted event is delivered to all listeners, in registration
    order, before ``emit`` returns. A listener that raises propagates to
    the emitter.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event_type: EventType, **data: Any) -> DebateEvent:
        event = DebateEvent(type=event_type, data=data)
        logger.debug("Event %s %s", event_type.value, sorted(data))
        for listener in list(self._listeners):
            listener(event)
        return event
