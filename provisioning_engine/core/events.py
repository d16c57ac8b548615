"""Event emitters for the provisioning engine."""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, Optional

from provisioning_engine.core.events_model import ProvisioningEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "run.started",
    "run.finished",
    "resource.creating",
    "resource.ready",
    "resource.unchanged",
    "resource.updating",
    "resource.failed",
    "resource.deleting",
    "resource.deleted",
}


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[ProvisioningEvent]) -> None:
        """Emit one or more events."""
        pass


class LoggingEventEmitter(EventEmitter):
    """
    Writes events to the log and keeps the most recent ones in memory.

    Only the last ``max_events`` are retained; ``None`` keeps everything
    (tests only).
    """

    def __init__(self, max_events: Optional[int] = 1000):
        self.events = deque(maxlen=max_events)

    def emit(self, events: Iterable[ProvisioningEvent]) -> None:
        for event in events:
            if event.event_type not in ALLOWED_EVENTS:
                raise ValueError(f"Invalid event type: {event.event_type}")
            if not event.stack_name:
                raise ValueError("Event must have stack_name")

            self.events.append(event)

            logger.info(
                f"[EVENT] {event.event_type} | stack={event.stack_name}"
                f" resource={event.logical_id or '-'}"
            )

    def of_type(self, event_type: str) -> list:
        return [e for e in self.events if e.event_type == event_type]


class MultiEventEmitter(EventEmitter):
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[ProvisioningEvent]) -> None:
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[ProvisioningEvent]) -> None:
        pass
