"""
In-process event bus.

Producers (the subscriber service, the click tracker, the HTTP API)
publish domain events; the trigger matcher subscribes to them. Publishing
never waits for automation runs.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
import uuid

from autoflow.engine.models import utcnow


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event types that can trigger automations."""
    NEW_LEAD = "new_lead"
    CLICK = "click"


@dataclass
class Event:
    """A published domain event."""
    type: str
    payload: Dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)


Handler = Callable[[Event], Any]


class EventBus:
    """
    Synchronous fan-out to registered handlers.

    Handlers must return quickly; anything long-running should be scheduled
    as a task. A failing handler is logged and does not affect the others.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_type: str, handler: Handler) -> None:
        event_type = EventType(event_type).value
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(EventType(event_type).value, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, event_type: str) -> List[Handler]:
        return list(self._handlers.get(EventType(event_type).value, []))

    def publish(
        self,
        event_type: str,
        payload: Dict[str, Any],
        event_id: Optional[str] = None,
    ) -> Event:
        """
        Publish an event to every handler subscribed to its type.

        The event id is ``event_id`` when given, else the payload's
        ``triggerInstanceId``, else a fresh uuid.

        Raises:
            ValueError: If the event type is unknown or the payload is not a dict
        """
        event_type = EventType(event_type).value
        if not isinstance(payload, dict):
            raise ValueError("Event payload must be an object")

        event_id = event_id or payload.get("triggerInstanceId")
        event = Event(type=event_type, payload=payload)
        if event_id:
            event.event_id = str(event_id)

        handlers = self.handlers(event_type)
        logger.debug(f"Publishing {event_type} event {event.event_id} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"Event handler failed for {event_type} event {event.event_id}: {e}")
        return event
