"""
Tests for the workflow execution API endpoints.
"""

import json
import pytest
from fastapi.testclient import TestClient

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from gtm_studio.main import app
from gtm_studio.api.v1 import workflows as workflows_api
from gtm_studio.api.v1.workflows import get_invoker

client = TestClient(app)


def get_test_workflow_data(**extra):
    """Helper to create a trigger -> script workflow as the editor sends it."""
    return {
        "workflow_id": "wf-api",
        "workflow_name": "API Test",
        "nodes": [
            {
                "id": "T",
                "type": "trigger",
                "position": {"x": 0, "y": 0},
                "data": {"label": "Start", "triggerId": "manual"},
            },
            {
                "id": "A",
                "type": "action",
                "position": {"x": 300, "y": 0},
                "data": {"label": "Script", "actionId": "generate-script", "config": {"name": "A"}},
            },
        ],
        "edges": [{"id": "e1", "source": "T", "target": "A"}],
        **extra,
    }


def read_events(body: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


class TestWorkflowsAPI:
    """Test suite for workflow execution endpoints."""

    @pytest.fixture(autouse=True)
    def setup_teardown(self, make_invoker):
        """Route actions to a stub invoker for each test."""
        self.invoker = make_invoker()
        app.dependency_overrides[get_invoker] = lambda: self.invoker
        yield
        app.dependency_overrides.pop(get_invoker, None)

    def test_root(self):
        response = client.get("/api/")

        assert response.status_code == 200

    def test_execute_success(self):
        response = client.post("/api/v1/workflows/execute", json=get_test_workflow_data())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["workflow_id"] == "wf-api"
        assert data["results"]["A"] == {"type": "script", "content": "A"}
        assert data["summary"]["scripts_generated"] == 1
        assert data["persistence_warning"] is None

    def test_execute_passes_task_and_variables(self):
        payload = get_test_workflow_data(task={"id": "task-1"}, variables={"campaign": "lent"})
        payload["nodes"][0]["data"]["triggerId"] = "webhook"

        data = client.post("/api/v1/workflows/execute", json=payload).json()

        assert data["results"]["T"]["data"] == {"id": "task-1"}
        assert data["variables"]["campaign"] == "lent"

    def test_failed_run_is_reported_not_raised(self, make_invoker):
        self.invoker = make_invoker(failures={"A"})

        response = client.post("/api/v1/workflows/execute", json=get_test_workflow_data())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["error_type"] == "ProviderError"
        assert "T" in data["results"]

    def test_invalid_edge_is_422(self):
        payload = get_test_workflow_data()
        payload["edges"].append({"id": "e2", "source": "A", "target": "missing"})

        response = client.post("/api/v1/workflows/execute", json=payload)

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "Invalid workflow graph"
        assert "missing" in response.json()["detail"]["diagnostics"][0]

    def test_cyclic_graph_is_422(self):
        payload = get_test_workflow_data()
        payload["edges"].append({"id": "e2", "source": "A", "target": "T"})

        response = client.post("/api/v1/workflows/execute", json=payload)

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "Invalid workflow graph"
        assert "T -> A -> T" in response.json()["detail"]["diagnostics"][0]
        assert self.invoker.calls == []

    def test_invalid_node_is_422(self):
        payload = get_test_workflow_data()
        payload["nodes"].append({"type": "action"})

        response = client.post("/api/v1/workflows/execute", json=payload)

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "Invalid workflow definition"

    def test_persistence_warning_is_attached(self, monkeypatch):
        monkeypatch.setattr(
            workflows_api, "save_execution_log", lambda result, workflow_id: (None, "not saved")
        )

        data = client.post("/api/v1/workflows/execute", json=get_test_workflow_data()).json()

        assert data["success"] is True
        assert data["persistence_warning"] == "not saved"

    def test_execute_stream(self):
        response = client.post("/api/v1/workflows/execute/stream", json=get_test_workflow_data())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = read_events(response.text)
        assert events[0]["event"] == "workflow_start"
        assert any(e["event"] == "node_progress" for e in events)
        assert events[-1]["event"] == "workflow_complete"
        assert events[-1]["result"]["results"]["A"]["content"] == "A"

    def test_execute_stream_invalid_graph(self):
        payload = get_test_workflow_data()
        payload["edges"].append({"id": "e2", "source": "nowhere", "target": "A"})

        response = client.post("/api/v1/workflows/execute/stream", json=payload)

        assert response.status_code == 422

    def test_estimate_cost(self):
        payload = get_test_workflow_data()
        payload["nodes"].append({"id": "I", "type": "action", "data": {"actionId": "generate-image"}})

        response = client.post("/api/v1/workflows/estimate-cost", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["per_node"] == {"A": 0.001, "I": 0.06}
        assert data["total"] == pytest.approx(0.061)

    def test_list_actions(self):
        response = client.get("/api/v1/workflows/actions")

        assert response.status_code == 200
        actions = {a["id"]: a["default_model"] for a in response.json()["actions"]}
        assert actions["create-video"] == "pixverse/pixverse-v4.5"
