"""
Storage package - Automations, run cursors and the automation log.
"""

from autoflow.storage.base import AutomationStore, LogStore, RunStore
from autoflow.storage.memory import MemoryAutomationStore, MemoryLogStore, MemoryRunStore
from autoflow.storage.sqlite import (
    SqliteAutomationStore,
    SqliteDatabase,
    SqliteLogStore,
    SqliteRunStore,
)

__all__ = [
    "AutomationStore",
    "LogStore",
    "RunStore",
    "MemoryAutomationStore",
    "MemoryLogStore",
    "MemoryRunStore",
    "SqliteAutomationStore",
    "SqliteDatabase",
    "SqliteLogStore",
    "SqliteRunStore",
]
