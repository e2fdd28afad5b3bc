"""
In-Memory Storage for the Automation Engine.

Provides task-safe storage for automations, runs and the automation log.
Stored objects are copied on the way in and out, so callers never share
mutable state with the store.
"""

from typing import Dict, List, Optional
from datetime import datetime
import asyncio

from autoflow.engine.models import Automation, AutomationLogEntry, Run, RunStatus, utcnow
from autoflow.storage.base import AutomationStore, LogStore, RunStore


class MemoryAutomationStore(AutomationStore):
    """In-memory automation documents. Lost on restart."""

    def __init__(self):
        self._automations: Dict[str, Automation] = {}
        self._lock = asyncio.Lock()

    async def save(self, automation: Automation) -> Automation:
        """Insert or replace an automation."""
        async with self._lock:
            self._automations[automation.id] = automation.model_copy(deep=True)
            return automation

    async def get(self, automation_id: str) -> Optional[Automation]:
        """Get an automation by ID."""
        async with self._lock:
            stored = self._automations.get(automation_id)
            return stored.model_copy(deep=True) if stored else None

    async def list_enabled(self, trigger_type: str) -> List[Automation]:
        """Enabled automations triggered by the given event type."""
        async with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._automations.values()
                if a.is_enabled and a.trigger.type == trigger_type
            ]

    async def list_all(self) -> List[Automation]:
        async with self._lock:
            return [a.model_copy(deep=True) for a in self._automations.values()]

    async def set_enabled(self, automation_id: str, enabled: bool) -> Optional[Automation]:
        """Enable or disable an automation."""
        async with self._lock:
            stored = self._automations.get(automation_id)
            if stored is None:
                return None
            stored.is_enabled = enabled
            return stored.model_copy(deep=True)

    async def delete(self, automation_id: str) -> bool:
        """Delete an automation."""
        async with self._lock:
            if automation_id in self._automations:
                del self._automations[automation_id]
                return True
            return False

    async def count(self) -> int:
        return len(self._automations)


class MemoryRunStore(RunStore):
    """In-memory run cursors. Lost on restart; use the SQLite store for durability."""

    def __init__(self):
        self._runs: Dict[str, Run] = {}
        self._lock = asyncio.Lock()

    async def save(self, run: Run) -> Run:
        async with self._lock:
            run.updated_at = utcnow()
            self._runs[run.run_id] = run.model_copy(deep=True)
            return run

    async def get(self, run_id: str) -> Optional[Run]:
        async with self._lock:
            stored = self._runs.get(run_id)
            return stored.model_copy(deep=True) if stored else None

    async def find_by_trigger(self, automation_id, subscriber_id, trigger_instance_id):
        async with self._lock:
            matches = [
                r for r in self._runs.values()
                if r.automation_id == automation_id
                and r.subscriber_id == subscriber_id
                and r.trigger_instance_id == trigger_instance_id
            ]
            if not matches:
                return None
            return max(matches, key=lambda r: r.created_at).model_copy(deep=True)

    async def claim(self, run_id: str) -> Optional[Run]:
        async with self._lock:
            stored = self._runs.get(run_id)
            if stored is None or stored.status != RunStatus.SUSPENDED:
                return None
            stored.status = RunStatus.RUNNING
            stored.resume_at = None
            stored.updated_at = utcnow()
            return stored.model_copy(deep=True)

    async def list_due(self, now: datetime, limit: int = 100) -> List[Run]:
        async with self._lock:
            due = [
                r for r in self._runs.values()
                if r.status == RunStatus.SUSPENDED and r.resume_at is not None and r.resume_at <= now
            ]
            due.sort(key=lambda r: r.resume_at)
            return [r.model_copy(deep=True) for r in due[:limit]]

    async def list_by_automation(self, automation_id: str) -> List[Run]:
        async with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._runs.values()
                if r.automation_id == automation_id
            ]

    async def count(self) -> int:
        return len(self._runs)


class MemoryLogStore(LogStore):
    """In-memory append-only log. Entries are never updated or removed."""

    def __init__(self):
        self._entries: List[AutomationLogEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, entry: AutomationLogEntry) -> AutomationLogEntry:
        async with self._lock:
            self._entries.append(entry.model_copy(deep=True))
            return entry

    async def query_for_idempotency(self, automation_id, subscriber_id, trigger_instance_id):
        async with self._lock:
            for entry in reversed(self._entries):
                if (
                    entry.automation_id == automation_id
                    and entry.subscriber_id == subscriber_id
                    and entry.trigger_instance_id == trigger_instance_id
                ):
                    return entry.status
            return None

    async def _select(self, **criteria) -> List[AutomationLogEntry]:
        async with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._entries
                if all(getattr(e, key) == value for key, value in criteria.items())
            ]

    async def list_by_automation(self, automation_id: str) -> List[AutomationLogEntry]:
        return await self._select(automation_id=automation_id)

    async def list_by_subscriber(self, subscriber_id: str) -> List[AutomationLogEntry]:
        return await self._select(subscriber_id=subscriber_id)

    async def list_by_run(self, run_id: str) -> List[AutomationLogEntry]:
        return await self._select(run_id=run_id)

    async def count(self) -> int:
        return len(self._entries)
