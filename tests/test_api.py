"""
Tests for the FastAPI endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from autoflow.main import app
from autoflow.runtime import build_runtime


AUTOMATION = {
    "name": "API Automation",
    "isEnabled": True,
    "trigger": {"id": "t1", "type": "new_lead", "params": {}},
    "nodes": [
        {
            "id": "A",
            "type": "CONDITION",
            "params": {"field": "country", "operator": "==", "value": "US"},
            "branches": {"true": "B", "false": "C"},
        },
        {"id": "B", "type": "tag", "params": {"tag": "us-lead"}, "next": "wait"},
        {"id": "C", "type": "action", "params": {"action": "tag", "tag": "intl-lead"}},
        {
            "id": "wait",
            "type": "DELAY",
            "params": {"delayType": "period", "delayAmount": 1, "delayUnit": "Hours"},
            "next": "end",
        },
        {"id": "end", "type": "END"},
    ],
}


# ============================================================
# Sync Test Client (for simple tests)
# ============================================================

@pytest.fixture
def client():
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert "name" in data
        assert "version" in data
        assert "endpoints" in data
        assert data["demo_automation"] == "lead-routing-demo"

    def test_health(self, client):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["automations_count"] >= 1
        assert data["scheduler_running"] is True


class TestActionEndpoints:
    """Tests for action endpoints."""

    def test_list_actions(self, client):
        response = client.get("/actions/")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 2
        names = [a["name"] for a in data["actions"]]
        assert "email" in names
        assert "tag" in names

    def test_get_action_by_alias(self, client):
        response = client.get("/actions/send_email")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "email"
        assert "subject" in data["parameters"]

    def test_get_nonexistent_action(self, client):
        response = client.get("/actions/fax")
        assert response.status_code == 404


class TestAutomationEndpoints:
    """Tests for automation endpoints."""

    def test_get_demo_automation(self, client):
        """Test getting the demo automation."""
        response = client.get("/automations/lead-routing-demo")
        assert response.status_code == 200

        data = response.json()
        assert data["automation"]["id"] == "lead-routing-demo"
        assert data["automation"]["isEnabled"] is True
        assert "graph TD" in data["mermaid_diagram"]

    def test_save_automation(self, client):
        response = client.put("/automations/api-1", json=AUTOMATION)
        assert response.status_code == 200

        data = response.json()
        assert data["automation_id"] == "api-1"
        assert data["node_count"] == 5
        assert "A -->|true| B" in data["mermaid_diagram"]

        listed = client.get("/automations/").json()
        assert "api-1" in [a["id"] for a in listed["automations"]]

    def test_save_rejects_cycle(self, client):
        """Test that cycles are rejected at save time."""
        document = {
            **AUTOMATION,
            "nodes": [
                {"id": "a", "type": "tag", "params": {"tag": "x"}, "next": "b"},
                {"id": "b", "type": "tag", "params": {"tag": "y"}, "next": "a"},
            ],
        }
        response = client.put("/automations/cyclic", json=document)
        assert response.status_code == 400
        assert "Cycle detected" in response.json()["detail"]
        assert client.get("/automations/cyclic").status_code == 404

    def test_save_rejects_unknown_action(self, client):
        document = {**AUTOMATION, "nodes": [{"id": "a", "type": "sms", "params": {}}]}
        response = client.put("/automations/unknown", json=document)
        assert response.status_code == 400
        assert "not registered" in response.json()["detail"]

    def test_save_rejects_duplicate_ids(self, client):
        document = {**AUTOMATION, "nodes": [{"id": "a", "type": "end"}, {"id": "a", "type": "end"}]}
        response = client.put("/automations/dupes", json=document)
        assert response.status_code == 422

    def test_enable_and_delete(self, client):
        client.put("/automations/api-2", json=AUTOMATION)

        response = client.patch("/automations/api-2/enabled", json={"enabled": False})
        assert response.status_code == 200
        assert response.json()["is_enabled"] is False

        assert client.delete("/automations/api-2").status_code == 204
        assert client.delete("/automations/api-2").status_code == 404
        assert client.patch("/automations/api-2/enabled", json={"enabled": True}).status_code == 404

    def test_empty_report(self, client):
        response = client.get("/automations/lead-routing-demo/report")
        assert response.status_code == 200
        assert response.json() == {"automation_id": "lead-routing-demo", "nodes": {}}

    def test_get_nonexistent_run(self, client):
        assert client.get("/runs/missing").status_code == 404
        assert client.post("/runs/missing/resume").status_code == 404

    def test_publish_invalid_event_type(self, client):
        response = client.post("/events", json={"type": "page_view", "payload": {}})
        assert response.status_code == 422


# ============================================================
# Async Tests (for event-driven flows)
# ============================================================

@pytest.fixture
def live_runtime(test_settings):
    """A runtime attached to the app without running the lifespan."""
    runtime = build_runtime(test_settings)
    runtime.start(run_scheduler=False)
    app.state.runtime = runtime
    yield runtime
    app.state.runtime = None


@pytest.mark.asyncio
async def test_event_to_log_flow(live_runtime):
    """Test publishing an event and reading the resulting log and run."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.put("/automations/flow", json=AUTOMATION)
        assert response.status_code == 200

        response = await ac.post(
            "/events",
            json={
                "type": "new_lead",
                "payload": {"subscriberId": "s1", "country": "US"},
                "event_id": "evt-1",
            },
        )
        assert response.status_code == 202
        assert response.json()["event_id"] == "evt-1"

        await live_runtime.matcher.drain()

        logs = (await ac.get("/automations/flow/logs")).json()
        assert [e["nodeId"] for e in logs["entries"]] == ["A", "B", "wait"]
        assert logs["entries"][0]["output"] == {"result": True}

        report = (await ac.get("/automations/flow/report")).json()
        assert report["nodes"]["A"] == {"success": 1, "failure": 0}

        runs = (await ac.get("/automations/flow/runs")).json()
        assert runs["total"] == 1
        run = runs["runs"][0]
        assert run["status"] == "suspended"
        assert run["currentNodeId"] == "end"

        run_id = run["runId"]
        assert (await ac.get(f"/runs/{run_id}")).json()["subscriberId"] == "s1"

        response = await ac.post(f"/runs/{run_id}/resume")
        assert response.status_code == 200
        assert response.json()["resumed"] is True
        assert response.json()["run"]["status"] == "completed"

        run_logs = (await ac.get(f"/runs/{run_id}/logs")).json()
        assert [e["nodeId"] for e in run_logs["entries"]] == ["A", "B", "wait", "end"]

        subscriber_logs = (await ac.get("/subscribers/s1/logs")).json()
        assert subscriber_logs["total"] == 4

        # Already completed: nothing to resume
        response = await ac.post(f"/runs/{run_id}/resume")
        assert response.json()["resumed"] is False


@pytest.mark.asyncio
async def test_redelivered_event_is_ignored(live_runtime):
    """Test that re-sending an event id does not add log entries."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        await ac.put("/automations/flow", json=AUTOMATION)
        event = {
            "type": "new_lead",
            "payload": {"subscriberId": "s2", "country": "FR"},
            "event_id": "evt-2",
        }

        await ac.post("/events", json=event)
        await live_runtime.matcher.drain()
        first = (await ac.get("/automations/flow/logs")).json()["total"]

        await ac.post("/events", json=event)
        await live_runtime.matcher.drain()
        second = (await ac.get("/automations/flow/logs")).json()["total"]

        assert first == 2
        assert second == first


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
