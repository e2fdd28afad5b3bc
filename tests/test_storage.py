"""
Tests for run and log storage, including durable suspension.
"""

import pytest
from datetime import timedelta

from autoflow.config import Settings
from autoflow.engine.models import AutomationLogEntry, LogStatus, Run, RunStatus, utcnow
from autoflow.runtime import build_runtime
from autoflow.storage import (
    MemoryAutomationStore,
    MemoryLogStore,
    MemoryRunStore,
    SqliteAutomationStore,
    SqliteDatabase,
    SqliteLogStore,
    SqliteRunStore,
)


@pytest.fixture(params=["memory", "sqlite"])
def automation_store(request, tmp_path):
    """Automation stores of each implementation."""
    if request.param == "memory":
        yield MemoryAutomationStore()
        return
    db = SqliteDatabase(str(tmp_path / "automations.db"))
    yield SqliteAutomationStore(db)
    db.close()


@pytest.fixture(params=["memory", "sqlite"])
def stores(request, tmp_path):
    """Run and log stores of each implementation."""
    if request.param == "memory":
        yield MemoryRunStore(), MemoryLogStore()
        return
    db = SqliteDatabase(str(tmp_path / "autoflow.db"))
    yield SqliteRunStore(db), SqliteLogStore(db)
    db.close()


def _entry(node_id, status=LogStatus.SUCCESS, subscriber_id="s1", trigger="t1", run_id="r1"):
    return AutomationLogEntry(
        automation_id="auto-1",
        node_id=node_id,
        subscriber_id=subscriber_id,
        run_id=run_id,
        trigger_instance_id=trigger,
        status=status,
        input={"params": {}},
        output={"ok": status == LogStatus.SUCCESS},
    )


# ============================================================
# Automation Store Tests
# ============================================================

class TestAutomationStore:
    """Tests shared by the memory and SQLite automation stores."""

    @pytest.mark.asyncio
    async def test_crud(self, automation_store, make_automation, routing_nodes):
        store = automation_store
        automation = make_automation(routing_nodes)

        await store.save(automation)
        assert await store.count() == 1
        assert (await store.get("auto-1")).name == "Test Automation"
        assert [a.id for a in await store.list_enabled("new_lead")] == ["auto-1"]
        assert await store.list_enabled("click") == []

        disabled = await store.set_enabled("auto-1", False)
        assert disabled.is_enabled is False
        assert await store.list_enabled("new_lead") == []
        assert len(await store.list_all()) == 1

        assert await store.delete("auto-1") is True
        assert await store.delete("auto-1") is False
        assert await store.get("auto-1") is None

    @pytest.mark.asyncio
    async def test_returns_copies(self, automation_store, make_automation, routing_nodes):
        store = automation_store
        await store.save(make_automation(routing_nodes))

        fetched = await store.get("auto-1")
        fetched.name = "changed"

        assert (await store.get("auto-1")).name == "Test Automation"

    @pytest.mark.asyncio
    async def test_save_replaces_in_place(self, automation_store, make_automation, routing_nodes):
        store = automation_store
        await store.save(make_automation(routing_nodes, id="first"))
        await store.save(make_automation(routing_nodes, id="second"))
        await store.save(make_automation(routing_nodes, id="first", name="Renamed"))

        assert [a.id for a in await store.list_all()] == ["first", "second"]
        assert (await store.get("first")).name == "Renamed"
        assert (await store.get("first")).nodes[0].branches.true == "B"


# ============================================================
# Run Store Tests
# ============================================================

class TestRunStore:
    """Tests shared by the memory and SQLite run stores."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, stores):
        runs, _ = stores
        run = Run(automation_id="auto-1", subscriber_id="s1", trigger_instance_id="t1",
                  current_node_id="a", context={"nested": {"x": 1}})

        await runs.save(run)
        loaded = await runs.get(run.run_id)

        assert loaded.context == {"nested": {"x": 1}}
        assert loaded.status == RunStatus.RUNNING
        assert await runs.get("missing") is None
        assert await runs.count() == 1

    @pytest.mark.asyncio
    async def test_find_by_trigger(self, stores):
        runs, _ = stores
        run = Run(automation_id="auto-1", subscriber_id="s1", trigger_instance_id="t1")
        await runs.save(run)

        assert (await runs.find_by_trigger("auto-1", "s1", "t1")).run_id == run.run_id
        assert await runs.find_by_trigger("auto-1", "s2", "t1") is None

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, stores):
        """Test that a suspended run can be claimed only once."""
        runs, _ = stores
        run = Run(automation_id="auto-1", subscriber_id="s1", trigger_instance_id="t1",
                  status=RunStatus.SUSPENDED, resume_at=utcnow())
        await runs.save(run)

        claimed = await runs.claim(run.run_id)

        assert claimed.status == RunStatus.RUNNING
        assert claimed.resume_at is None
        assert await runs.claim(run.run_id) is None
        assert (await runs.get(run.run_id)).status == RunStatus.RUNNING

    @pytest.mark.asyncio
    async def test_list_due(self, stores):
        runs, _ = stores
        now = utcnow()
        due = Run(automation_id="a", subscriber_id="s1", trigger_instance_id="t1",
                  status=RunStatus.SUSPENDED, resume_at=now - timedelta(minutes=1))
        later = Run(automation_id="a", subscriber_id="s2", trigger_instance_id="t1",
                    status=RunStatus.SUSPENDED, resume_at=now + timedelta(hours=1))
        done = Run(automation_id="a", subscriber_id="s3", trigger_instance_id="t1",
                   status=RunStatus.COMPLETED)
        for run in (due, later, done):
            await runs.save(run)

        assert [r.run_id for r in await runs.list_due(now)] == [due.run_id]
        assert len(await runs.list_due(now + timedelta(hours=2))) == 2
        assert len(await runs.list_due(now + timedelta(hours=2), limit=1)) == 1
        assert len(await runs.list_by_automation("a")) == 3


# ============================================================
# Log Store Tests
# ============================================================

class TestLogStore:
    """Tests shared by the memory and SQLite log stores."""

    @pytest.mark.asyncio
    async def test_append_preserves_order(self, stores):
        _, logs = stores
        for node_id in ("a", "b", "c"):
            await logs.append(_entry(node_id))

        entries = await logs.list_by_automation("auto-1")
        assert [e.node_id for e in entries] == ["a", "b", "c"]
        assert entries[0].output == {"ok": True}
        assert await logs.count() == 3

    @pytest.mark.asyncio
    async def test_query_for_idempotency(self, stores):
        _, logs = stores
        assert await logs.query_for_idempotency("auto-1", "s1", "t1") is None

        await logs.append(_entry("a"))
        await logs.append(_entry("b", status=LogStatus.FAILURE))

        assert await logs.query_for_idempotency("auto-1", "s1", "t1") == LogStatus.FAILURE
        assert await logs.query_for_idempotency("auto-1", "s1", "t2") is None

    @pytest.mark.asyncio
    async def test_queries(self, stores):
        _, logs = stores
        await logs.append(_entry("a", subscriber_id="s1", run_id="r1"))
        await logs.append(_entry("a", subscriber_id="s2", run_id="r2"))
        await logs.append(_entry("b", subscriber_id="s2", run_id="r2", status=LogStatus.FAILURE))

        assert len(await logs.list_by_subscriber("s2")) == 2
        assert [e.node_id for e in await logs.list_by_run("r2")] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_node_report(self, stores):
        """Test per-node success/failure counts."""
        _, logs = stores
        await logs.append(_entry("a"))
        await logs.append(_entry("a", subscriber_id="s2"))
        await logs.append(_entry("b", status=LogStatus.FAILURE))

        assert await logs.node_report("auto-1") == {
            "a": {"success": 2, "failure": 0},
            "b": {"success": 0, "failure": 1},
        }


# ============================================================
# Durability Tests
# ============================================================

class TestDurableSuspension:
    """A delayed run survives a process restart."""

    @pytest.mark.asyncio
    async def test_resume_after_restart(self, tmp_path, make_automation, delay_nodes):
        """Test that a resumed run continues after the delay, not from the entry node."""
        config = Settings(
            DATABASE_PATH=str(tmp_path / "runs.db"),
            RETRY_BASE_DELAY=0.0,
            REGISTER_DEMO=False,
        )
        automation = make_automation(delay_nodes)

        first = build_runtime(config)
        await first.automations.save(automation)
        run = await (await first.executor.start(automation, "s1", {"name": "Ada"}, "evt-1")).wait()
        assert run.status == RunStatus.SUSPENDED
        await first.stop()

        # Simulated restart: nothing survives but the database file
        second = build_runtime(config)
        assert (await second.automations.get("auto-1")).nodes[1].id == "wait"

        persisted = await second.runs.get(run.run_id)
        assert persisted.status == RunStatus.SUSPENDED
        assert persisted.current_node_id == "second"

        resumed = await second.executor.resume(run.run_id)

        assert resumed.status == RunStatus.COMPLETED
        assert resumed.context["name"] == "Ada"
        entries = await second.logs.list_by_run(run.run_id)
        assert [e.node_id for e in entries] == ["first", "wait", "second"]
        await second.stop()

    @pytest.mark.asyncio
    async def test_scheduler_tick_resumes_due_runs(self, runtime, make_automation, delay_nodes):
        automation = make_automation(delay_nodes)
        await runtime.automations.save(automation)
        run = await (await runtime.executor.start(automation, "s1", {})).wait()

        assert await runtime.scheduler.tick() == 0

        resumed = await runtime.scheduler.tick(now=utcnow() + timedelta(days=2))

        assert resumed == 1
        assert (await runtime.runs.get(run.run_id)).status == RunStatus.COMPLETED
        assert await runtime.scheduler.tick(now=utcnow() + timedelta(days=2)) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
