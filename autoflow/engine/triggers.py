"""
Trigger matching.

Turns a published domain event into zero or more runs: one per enabled
automation whose trigger type and filter match the event payload.
"""

from typing import Any, Dict, Iterable, List, Optional, Set, TYPE_CHECKING
from copy import deepcopy
import asyncio
import logging

from autoflow.engine.conditions import ConditionEvaluator, trigger_filter
from autoflow.engine.models import Automation
from autoflow.events import EventType

if TYPE_CHECKING:
    from autoflow.engine.executor import RunHandle, WorkflowExecutor
    from autoflow.events import Event, EventBus
    from autoflow.storage.base import AutomationStore


logger = logging.getLogger(__name__)


def resolve_subscriber_id(payload: Dict[str, Any]) -> Optional[str]:
    """Subscriber id implied by an event payload, or None."""
    for key in ("subscriberId", "subscriber_id"):
        value = payload.get(key)
        if value:
            return str(value)
    subscriber = payload.get("subscriber")
    if isinstance(subscriber, dict) and subscriber.get("id"):
        return str(subscriber["id"])
    return None


class TriggerMatcher:
    """
    Subscribes to the event bus and starts runs for matching automations.

    Each automation is matched and started in isolation: an automation with
    a broken filter or an invalid graph is logged and skipped without
    affecting the others.
    """

    def __init__(
        self,
        bus: "EventBus",
        automations: "AutomationStore",
        executor: "WorkflowExecutor",
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.bus = bus
        self.automations = automations
        self.executor = executor
        self.evaluator = evaluator or executor.evaluator
        self._subscribed: List[str] = []
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_types: Optional[Iterable[str]] = None) -> None:
        """Listen for the given event types (default: every known type)."""
        for event_type in event_types or [t.value for t in EventType]:
            self.bus.subscribe(event_type, self.on_event)
            self._subscribed.append(event_type)
            logger.info(f"Trigger matcher listening for '{event_type}' events")

    def close(self) -> None:
        for event_type in self._subscribed:
            self.bus.unsubscribe(event_type, self.on_event)
        self._subscribed = []

    def on_event(self, event: "Event") -> "asyncio.Task":
        """Bus handler. Schedules matching and returns without waiting for it."""
        task = asyncio.get_running_loop().create_task(
            self.handle_event(event.type, event.payload, event.event_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_event(
        self,
        event_type: str,
        payload: Dict[str, Any],
        event_id: Optional[str] = None,
    ) -> List["RunHandle"]:
        """
        Start a run for every enabled automation matching the event.

        Returns:
            Handles of the started (or skipped duplicate) runs
        """
        try:
            candidates = await self.automations.list_enabled(event_type)
        except Exception as e:
            logger.exception(f"Failed to load automations for '{event_type}' event: {e}")
            return []

        if not candidates:
            logger.debug(f"No enabled automations for '{event_type}' event")
            return []

        trigger_instance_id = event_id or payload.get("triggerInstanceId")
        handles = []
        for automation in candidates:
            try:
                if not self.matches(automation, event_type, payload):
                    continue

                subscriber_id = resolve_subscriber_id(payload)
                if subscriber_id is None:
                    logger.warning(
                        f"'{event_type}' event matched automation '{automation.id}' "
                        f"but carries no subscriber id; skipping"
                    )
                    continue

                handle = await self.executor.start(
                    automation,
                    subscriber_id,
                    deepcopy(payload),
                    trigger_instance_id=trigger_instance_id,
                )
                handles.append(handle)
            except Exception as e:
                logger.exception(
                    f"Failed to start automation '{automation.id}' for '{event_type}' event: {e}"
                )

        logger.info(f"'{event_type}' event started {len(handles)} run(s)")
        return handles

    def matches(self, automation: Automation, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Whether an automation is triggered by this event.

        Raises:
            ConditionError: If the trigger filter is malformed
        """
        if not automation.is_enabled or automation.trigger.type != event_type:
            return False

        owner = payload.get("userId")
        if owner and automation.user_id and str(owner) != str(automation.user_id):
            return False

        predicate = trigger_filter(automation.trigger.params)
        if predicate is None:
            return True
        return self.evaluator.evaluate(predicate, payload)

    async def drain(self) -> None:
        """Wait for pending event handling and the runs it started."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.executor.drain()
