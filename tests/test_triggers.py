"""
Tests for the event bus and trigger matching.
"""

import pytest

from autoflow.engine.models import LogStatus, RunStatus
from autoflow.engine.triggers import resolve_subscriber_id
from autoflow.events import EventBus, EventType


# ============================================================
# Event Bus Tests
# ============================================================

class TestEventBus:
    """Tests for the EventBus."""

    def test_publish_to_subscribers(self):
        bus = EventBus()
        received = []
        bus.subscribe("new_lead", received.append)

        event = bus.publish(EventType.NEW_LEAD, {"subscriberId": "s1"})

        assert received == [event]
        assert event.type == "new_lead"
        assert event.event_id

    def test_event_id_override(self):
        bus = EventBus()
        assert bus.publish("click", {}, event_id="evt-7").event_id == "evt-7"

    def test_event_id_from_payload(self):
        """Test that an explicit id wins over the payload's trigger instance id."""
        bus = EventBus()
        payload = {"triggerInstanceId": "form-9"}

        assert bus.publish("new_lead", payload).event_id == "form-9"
        assert bus.publish("new_lead", payload, event_id="evt-1").event_id == "evt-1"
        assert bus.publish("new_lead", {}).event_id != bus.publish("new_lead", {}).event_id

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe("click", received.append)
        bus.unsubscribe("click", received.append)

        bus.publish("click", {})
        assert received == []

    def test_failing_handler_is_isolated(self):
        """Test that one failing handler does not stop the others."""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("click", broken)
        bus.subscribe("click", received.append)

        bus.publish("click", {"url": "https://example.com"})
        assert len(received) == 1

    def test_invalid_publish(self):
        bus = EventBus()
        with pytest.raises(ValueError):
            bus.publish("unknown_event", {})
        with pytest.raises(ValueError, match="payload must be an object"):
            bus.publish("click", ["not", "a", "dict"])


# ============================================================
# Trigger Matcher Tests
# ============================================================

class TestTriggerMatcher:
    """Tests for the TriggerMatcher."""

    def test_resolve_subscriber_id(self):
        assert resolve_subscriber_id({"subscriberId": "s1"}) == "s1"
        assert resolve_subscriber_id({"subscriber_id": 42}) == "42"
        assert resolve_subscriber_id({"subscriber": {"id": "s3"}}) == "s3"
        assert resolve_subscriber_id({"email": "x@example.com"}) is None

    @pytest.mark.asyncio
    async def test_end_to_end_new_lead(self, runtime, make_automation, routing_nodes):
        """Test that a new_lead event routes through the condition to B only."""
        await runtime.automations.save(make_automation(routing_nodes))
        runtime.start(run_scheduler=False)

        runtime.bus.publish("new_lead", {"country": "US", "subscriberId": "s1"})
        await runtime.matcher.drain()

        logs = await runtime.logs.list_by_automation("auto-1")
        assert [(e.node_id, e.status) for e in logs] == [
            ("A", LogStatus.SUCCESS),
            ("B", LogStatus.SUCCESS),
        ]
        assert logs[0].output == {"result": True}
        assert runtime.tagging_service.tags == {"s1": {"us-lead"}}
        await runtime.stop()

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_runs(self, runtime, make_automation, routing_nodes):
        await runtime.automations.save(make_automation(routing_nodes))
        runtime.start(run_scheduler=False)

        runtime.bus.publish("new_lead", {"country": "US", "subscriberId": "s1"})

        assert await runtime.logs.count() == 0
        await runtime.matcher.drain()
        assert await runtime.logs.count() == 2
        await runtime.stop()

    @pytest.mark.asyncio
    async def test_disabled_automation_is_not_triggered(self, runtime, make_automation, routing_nodes):
        """Test that disabling an automation stops new runs."""
        await runtime.automations.save(make_automation(routing_nodes))
        await runtime.automations.set_enabled("auto-1", False)

        handles = await runtime.matcher.handle_event("new_lead", {"country": "US", "subscriberId": "s1"})

        assert handles == []
        assert await runtime.logs.count() == 0

    @pytest.mark.asyncio
    async def test_trigger_type_must_match(self, runtime, make_automation, routing_nodes):
        await runtime.automations.save(make_automation(routing_nodes, trigger_type="click"))

        assert await runtime.matcher.handle_event("new_lead", {"subscriberId": "s1"}) == []

    @pytest.mark.asyncio
    async def test_list_filter(self, runtime, make_automation, routing_nodes):
        """Test that listId requires the lead to join that list."""
        await runtime.automations.save(
            make_automation(routing_nodes, trigger_params={"listId": "list-1"})
        )

        miss = await runtime.matcher.handle_event(
            "new_lead", {"subscriberId": "s1", "country": "US", "lists": ["list-2"]}
        )
        hit = await runtime.matcher.handle_event(
            "new_lead", {"subscriberId": "s2", "country": "US", "lists": ["list-1"]}
        )

        assert miss == []
        assert len(hit) == 1
        assert hit[0].subscriber_id == "s2"

    @pytest.mark.asyncio
    async def test_owner_scoping(self, runtime, make_automation, routing_nodes):
        await runtime.automations.save(make_automation(routing_nodes, userId="owner-1"))

        other = await runtime.matcher.handle_event(
            "new_lead", {"subscriberId": "s1", "userId": "owner-2"}
        )
        mine = await runtime.matcher.handle_event(
            "new_lead", {"subscriberId": "s1", "userId": "owner-1"}
        )

        assert other == []
        assert len(mine) == 1

    @pytest.mark.asyncio
    async def test_broken_automation_does_not_block_others(self, runtime, make_automation, routing_nodes):
        """Test per-automation failure isolation."""
        await runtime.automations.save(
            make_automation(routing_nodes, id="broken", trigger_params={"conditions": "bad"})
        )
        await runtime.automations.save(
            make_automation([{"id": "x", "type": "fax"}], id="unregistered")
        )
        await runtime.automations.save(make_automation(routing_nodes, id="healthy"))

        handles = await runtime.matcher.handle_event(
            "new_lead", {"subscriberId": "s1", "country": "US"}
        )
        await runtime.executor.drain()

        assert [h.automation_id for h in handles] == ["healthy"]
        assert len(await runtime.logs.list_by_automation("healthy")) == 2

    @pytest.mark.asyncio
    async def test_missing_subscriber_is_skipped(self, runtime, make_automation, routing_nodes):
        await runtime.automations.save(make_automation(routing_nodes))

        assert await runtime.matcher.handle_event("new_lead", {"country": "US"}) == []

    @pytest.mark.asyncio
    async def test_redelivered_event_is_idempotent(self, runtime, make_automation, routing_nodes):
        """Test that the same event id does not produce additional log entries."""
        await runtime.automations.save(make_automation(routing_nodes))
        payload = {"country": "FR", "subscriberId": "s1"}

        first = await runtime.matcher.handle_event("new_lead", payload, event_id="evt-1")
        run = await first[0].wait()
        assert run.status == RunStatus.COMPLETED
        count = await runtime.logs.count()

        second = await runtime.matcher.handle_event("new_lead", payload, event_id="evt-1")
        await runtime.executor.drain()

        assert second[0].skipped
        assert await runtime.logs.count() == count

    @pytest.mark.asyncio
    async def test_trigger_instance_from_payload(self, runtime, make_automation, routing_nodes):
        await runtime.automations.save(make_automation(routing_nodes))

        handles = await runtime.matcher.handle_event(
            "new_lead", {"subscriberId": "s1", "triggerInstanceId": "form-9"}
        )
        assert handles[0].trigger_instance_id == "form-9"
        await runtime.executor.drain()

    @pytest.mark.asyncio
    async def test_redelivery_through_bus_is_idempotent(self, runtime, make_automation, routing_nodes):
        """Test that publishing the same trigger instance twice starts one run."""
        await runtime.automations.save(make_automation(routing_nodes))
        runtime.start(run_scheduler=False)
        payload = {"country": "US", "subscriberId": "s1", "triggerInstanceId": "form-9"}

        runtime.bus.publish("new_lead", payload)
        await runtime.matcher.drain()
        runtime.bus.publish("new_lead", payload)
        await runtime.matcher.drain()

        runs = await runtime.runs.list_by_automation("auto-1")
        assert len(runs) == 1
        assert runs[0].trigger_instance_id == "form-9"
        assert await runtime.logs.count() == 2
        await runtime.stop()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
