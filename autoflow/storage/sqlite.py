"""
SQLite storage for automations, runs and the automation log.

Automations, suspended runs and log entries survive process restarts: a run written
here can be resumed by a fresh process from its persisted cursor alone.
The sqlite3 calls run in the default executor so the event loop is never
blocked on disk I/O.
"""

from typing import Any, Callable, List, Optional
from datetime import datetime, timezone
from pathlib import Path
import asyncio
import functools
import json
import logging
import sqlite3
import threading

from autoflow.engine.models import Automation, AutomationLogEntry, LogStatus, Run, RunStatus, utcnow
from autoflow.storage.base import AutomationStore, LogStore, RunStore


logger = logging.getLogger(__name__)


def _ts(value: datetime) -> str:
    """Sortable UTC timestamp."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SqliteDatabase:
    """One shared connection guarded by a lock."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._configure_pragmas()
        self._ensure_schema()

    def _configure_pragmas(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute("PRAGMA synchronous=NORMAL;")
                cursor.execute("PRAGMA busy_timeout=5000;")
            except sqlite3.DatabaseError:
                logger.warning("Failed to configure sqlite pragmas", exc_info=True)

    def _ensure_schema(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS automations (
                    id TEXT PRIMARY KEY,
                    trigger_type TEXT NOT NULL,
                    is_enabled INTEGER NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    automation_id TEXT NOT NULL,
                    subscriber_id TEXT NOT NULL,
                    trigger_instance_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    resume_at TEXT,
                    created_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_runs_due ON runs (status, resume_at)"
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_runs_trigger
                ON runs (automation_id, subscriber_id, trigger_instance_id)
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS automation_logs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    automation_id TEXT NOT NULL,
                    subscriber_id TEXT NOT NULL,
                    run_id TEXT,
                    trigger_instance_id TEXT,
                    node_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    executed_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_logs_automation ON automation_logs (automation_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_logs_subscriber ON automation_logs (subscriber_id)"
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_logs_trigger
                ON automation_logs (automation_id, subscriber_id, trigger_instance_id)
                """
            )
            self._connection.commit()

    def _locked(self, func: Callable[[sqlite3.Cursor], Any]) -> Any:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                result = func(cursor)
                self._connection.commit()
                return result
            except Exception:
                self._connection.rollback()
                raise

    async def run(self, func: Callable[[sqlite3.Cursor], Any]) -> Any:
        """Run ``func(cursor)`` in a transaction on a worker thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._locked, func))

    def close(self) -> None:
        with self._lock:
            self._connection.close()


class SqliteAutomationStore(AutomationStore):
    """Durable automation documents, listed in the order they were first saved."""

    def __init__(self, db: SqliteDatabase):
        self._db = db

    @staticmethod
    def _row_to_automation(row: Optional[sqlite3.Row]) -> Optional[Automation]:
        if row is None:
            return None
        return Automation.from_dict(json.loads(row["document"]))

    async def save(self, automation: Automation) -> Automation:
        document = json.dumps(automation.to_dict())

        def write(cursor):
            cursor.execute(
                """
                INSERT INTO automations (id, trigger_type, is_enabled, document)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    trigger_type = excluded.trigger_type,
                    is_enabled = excluded.is_enabled,
                    document = excluded.document
                """,
                (automation.id, automation.trigger.type, int(automation.is_enabled), document),
            )

        await self._db.run(write)
        return automation

    async def get(self, automation_id: str) -> Optional[Automation]:
        row = await self._db.run(
            lambda c: c.execute(
                "SELECT document FROM automations WHERE id = ?", (automation_id,)
            ).fetchone()
        )
        return self._row_to_automation(row)

    async def list_enabled(self, trigger_type: str) -> List[Automation]:
        rows = await self._db.run(
            lambda c: c.execute(
                """
                SELECT document FROM automations
                WHERE is_enabled = 1 AND trigger_type = ?
                ORDER BY rowid
                """,
                (trigger_type,),
            ).fetchall()
        )
        return [self._row_to_automation(row) for row in rows]

    async def list_all(self) -> List[Automation]:
        rows = await self._db.run(
            lambda c: c.execute("SELECT document FROM automations ORDER BY rowid").fetchall()
        )
        return [self._row_to_automation(row) for row in rows]

    async def set_enabled(self, automation_id: str, enabled: bool) -> Optional[Automation]:
        def update(cursor):
            row = cursor.execute(
                "SELECT document FROM automations WHERE id = ?", (automation_id,)
            ).fetchone()
            automation = self._row_to_automation(row)
            if automation is None:
                return None
            automation.is_enabled = enabled
            cursor.execute(
                "UPDATE automations SET is_enabled = ?, document = ? WHERE id = ?",
                (int(enabled), json.dumps(automation.to_dict()), automation_id),
            )
            return automation

        return await self._db.run(update)

    async def delete(self, automation_id: str) -> bool:
        deleted = await self._db.run(
            lambda c: c.execute("DELETE FROM automations WHERE id = ?", (automation_id,)).rowcount
        )
        return deleted > 0

    async def count(self) -> int:
        row = await self._db.run(lambda c: c.execute("SELECT COUNT(*) FROM automations").fetchone())
        return row[0]


class SqliteRunStore(RunStore):
    """Durable run cursors."""

    def __init__(self, db: SqliteDatabase):
        self._db = db

    @staticmethod
    def _row_to_run(row: Optional[sqlite3.Row]) -> Optional[Run]:
        if row is None:
            return None
        return Run.from_dict(json.loads(row["document"]))

    async def save(self, run: Run) -> Run:
        run.updated_at = utcnow()
        document = json.dumps(run.to_dict())

        def write(cursor):
            cursor.execute(
                """
                INSERT OR REPLACE INTO runs
                    (run_id, automation_id, subscriber_id, trigger_instance_id,
                     status, resume_at, created_at, document)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.run_id,
                    run.automation_id,
                    run.subscriber_id,
                    run.trigger_instance_id,
                    run.status.value,
                    _ts(run.resume_at) if run.resume_at else None,
                    _ts(run.created_at),
                    document,
                ),
            )

        await self._db.run(write)
        return run

    async def get(self, run_id: str) -> Optional[Run]:
        row = await self._db.run(
            lambda c: c.execute("SELECT document FROM runs WHERE run_id = ?", (run_id,)).fetchone()
        )
        return self._row_to_run(row)

    async def find_by_trigger(self, automation_id, subscriber_id, trigger_instance_id):
        row = await self._db.run(
            lambda c: c.execute(
                """
                SELECT document FROM runs
                WHERE automation_id = ? AND subscriber_id = ? AND trigger_instance_id = ?
                ORDER BY created_at DESC LIMIT 1
                """,
                (automation_id, subscriber_id, trigger_instance_id),
            ).fetchone()
        )
        return self._row_to_run(row)

    async def claim(self, run_id: str) -> Optional[Run]:
        def claim_row(cursor):
            row = cursor.execute(
                "SELECT document FROM runs WHERE run_id = ? AND status = ?",
                (run_id, RunStatus.SUSPENDED.value),
            ).fetchone()
            run = self._row_to_run(row)
            if run is None:
                return None
            run.status = RunStatus.RUNNING
            run.resume_at = None
            run.updated_at = utcnow()
            cursor.execute(
                "UPDATE runs SET status = ?, resume_at = NULL, document = ? WHERE run_id = ?",
                (run.status.value, json.dumps(run.to_dict()), run_id),
            )
            return run

        return await self._db.run(claim_row)

    async def list_due(self, now: datetime, limit: int = 100) -> List[Run]:
        rows = await self._db.run(
            lambda c: c.execute(
                """
                SELECT document FROM runs
                WHERE status = ? AND resume_at IS NOT NULL AND resume_at <= ?
                ORDER BY resume_at LIMIT ?
                """,
                (RunStatus.SUSPENDED.value, _ts(now), limit),
            ).fetchall()
        )
        return [self._row_to_run(row) for row in rows]

    async def list_by_automation(self, automation_id: str) -> List[Run]:
        rows = await self._db.run(
            lambda c: c.execute(
                "SELECT document FROM runs WHERE automation_id = ? ORDER BY created_at",
                (automation_id,),
            ).fetchall()
        )
        return [self._row_to_run(row) for row in rows]

    async def count(self) -> int:
        row = await self._db.run(lambda c: c.execute("SELECT COUNT(*) FROM runs").fetchone())
        return row[0]


class SqliteLogStore(LogStore):
    """Durable append-only automation log. Rows are inserted, never updated."""

    def __init__(self, db: SqliteDatabase):
        self._db = db

    async def append(self, entry: AutomationLogEntry) -> AutomationLogEntry:
        document = json.dumps(entry.to_dict())

        def insert(cursor):
            cursor.execute(
                """
                INSERT INTO automation_logs
                    (id, automation_id, subscriber_id, run_id, trigger_instance_id,
                     node_id, status, executed_at, document)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.automation_id,
                    entry.subscriber_id,
                    entry.run_id,
                    entry.trigger_instance_id,
                    entry.node_id,
                    entry.status.value,
                    _ts(entry.executed_at),
                    document,
                ),
            )

        await self._db.run(insert)
        return entry

    async def query_for_idempotency(self, automation_id, subscriber_id, trigger_instance_id):
        row = await self._db.run(
            lambda c: c.execute(
                """
                SELECT status FROM automation_logs
                WHERE automation_id = ? AND subscriber_id = ? AND trigger_instance_id = ?
                ORDER BY seq DESC LIMIT 1
                """,
                (automation_id, subscriber_id, trigger_instance_id),
            ).fetchone()
        )
        return LogStatus(row["status"]) if row else None

    async def _select(self, column: str, value: str) -> List[AutomationLogEntry]:
        rows = await self._db.run(
            lambda c: c.execute(
                f"SELECT document FROM automation_logs WHERE {column} = ? ORDER BY seq",
                (value,),
            ).fetchall()
        )
        return [AutomationLogEntry.from_dict(json.loads(row["document"])) for row in rows]

    async def list_by_automation(self, automation_id: str) -> List[AutomationLogEntry]:
        return await self._select("automation_id", automation_id)

    async def list_by_subscriber(self, subscriber_id: str) -> List[AutomationLogEntry]:
        return await self._select("subscriber_id", subscriber_id)

    async def list_by_run(self, run_id: str) -> List[AutomationLogEntry]:
        return await self._select("run_id", run_id)

    async def count(self) -> int:
        row = await self._db.run(
            lambda c: c.execute("SELECT COUNT(*) FROM automation_logs").fetchone()
        )
        return row[0]
