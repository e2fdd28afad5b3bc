"""
Storage interfaces used by the engine.

The engine only needs these narrow contracts; the in-memory and SQLite
implementations are interchangeable.
"""

from typing import Dict, List, Optional
from abc import ABC, abstractmethod
from datetime import datetime

from autoflow.engine.models import Automation, AutomationLogEntry, LogStatus, Run


class AutomationStore(ABC):
    """
    Automation documents.

    The engine only reads from it; saving, enabling and deleting belong to
    the administrative surface.
    """

    @abstractmethod
    async def save(self, automation: Automation) -> Automation:
        """Insert or replace an automation."""

    @abstractmethod
    async def get(self, automation_id: str) -> Optional[Automation]:
        ...

    @abstractmethod
    async def list_enabled(self, trigger_type: str) -> List[Automation]:
        """Enabled automations triggered by the given event type."""

    @abstractmethod
    async def list_all(self) -> List[Automation]:
        ...

    @abstractmethod
    async def set_enabled(self, automation_id: str, enabled: bool) -> Optional[Automation]:
        """Enable or disable an automation. Returns None if it does not exist."""

    @abstractmethod
    async def delete(self, automation_id: str) -> bool:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...


class RunStore(ABC):
    """Persistence for run cursors."""

    @abstractmethod
    async def save(self, run: Run) -> Run:
        """Insert or replace a run."""

    @abstractmethod
    async def get(self, run_id: str) -> Optional[Run]:
        ...

    @abstractmethod
    async def find_by_trigger(
        self, automation_id: str, subscriber_id: str, trigger_instance_id: str
    ) -> Optional[Run]:
        """Latest run started for this (automation, subscriber, trigger instance)."""

    @abstractmethod
    async def claim(self, run_id: str) -> Optional[Run]:
        """Move a suspended run to running. Returns None if it was not suspended."""

    @abstractmethod
    async def list_due(self, now: datetime, limit: int = 100) -> List[Run]:
        """Suspended runs whose resume time has passed, oldest first."""

    @abstractmethod
    async def list_by_automation(self, automation_id: str) -> List[Run]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...


class LogStore(ABC):
    """Append-only automation log."""

    @abstractmethod
    async def append(self, entry: AutomationLogEntry) -> AutomationLogEntry:
        ...

    @abstractmethod
    async def query_for_idempotency(
        self, automation_id: str, subscriber_id: str, trigger_instance_id: str
    ) -> Optional[LogStatus]:
        """Status of the latest entry for this trigger instance, or None."""

    @abstractmethod
    async def list_by_automation(self, automation_id: str) -> List[AutomationLogEntry]:
        ...

    @abstractmethod
    async def list_by_subscriber(self, subscriber_id: str) -> List[AutomationLogEntry]:
        ...

    @abstractmethod
    async def list_by_run(self, run_id: str) -> List[AutomationLogEntry]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    async def node_report(self, automation_id: str) -> Dict[str, Dict[str, int]]:
        """Per-node success/failure counts for an automation."""
        report: Dict[str, Dict[str, int]] = {}
        for entry in await self.list_by_automation(automation_id):
            counts = report.setdefault(
                entry.node_id, {LogStatus.SUCCESS.value: 0, LogStatus.FAILURE.value: 0}
            )
            counts[entry.status.value] += 1
        return report
