from datetime import date, timedelta

import pytest

from app import create_app
from cycle_planner.config import PlannerConfig
from cycle_planner.store import MemoryStore, StoreError


class BrokenStore(MemoryStore):
    async def list_tasks(self):
        raise StoreError("ストアへのアクセスに失敗しました: tasks")


@pytest.fixture
def client():
    app = create_app(store=MemoryStore(), config=PlannerConfig())
    app.config["TESTING"] = True
    return app.test_client()


def _days_from_now(days):
    return (date.today() + timedelta(days=days)).isoformat()


def test_create_and_list_tasks(client):
    response = client.post("/api/tasks", json={"name": "Write report", "energy_level": "high"})
    assert response.status_code == 201
    body = response.get_json()
    assert body["task"]["auto_scheduled"] is True
    assert body["task"]["scheduled_date"] >= date.today().isoformat()
    assert body["schedule"]["scheduled_date"] == body["task"]["scheduled_date"]

    tasks = client.get("/api/tasks").get_json()
    assert [t["name"] for t in tasks] == ["Write report"]


def test_invalid_task_returns_400(client):
    response = client.post("/api/tasks", json={"name": ""})
    assert response.status_code == 400
    assert "error" in response.get_json()

    response = client.post("/api/tasks", json={"name": "x", "energy_level": "extreme"})
    assert response.status_code == 400


def test_move_complete_and_history(client):
    created = client.post("/api/tasks", json={"name": "Dentist", "scheduled_date": _days_from_now(1)}).get_json()
    task_id = created["task"]["id"]

    moved = client.patch(f"/api/tasks/{task_id}/move", json={"scheduled_date": _days_from_now(3)})
    assert moved.status_code == 200
    assert moved.get_json()["scheduled_date"] == _days_from_now(3)

    past = client.patch(f"/api/tasks/{task_id}/move", json={"scheduled_date": _days_from_now(-1)})
    assert past.status_code == 400

    done = client.post(f"/api/tasks/{task_id}/complete")
    assert done.get_json()["completed"] is True

    actions = [e["action"] for e in client.get(f"/api/tasks/{task_id}/history").get_json()]
    assert actions == ["created", "updated", "completed"]


def test_unknown_task_returns_404(client):
    response = client.patch("/api/tasks/missing/move", json={"scheduled_date": _days_from_now(2)})
    assert response.status_code == 404
    assert client.delete("/api/tasks/missing").status_code == 404


def test_split_and_delete(client):
    created = client.post("/api/tasks", json={"name": "Move house", "energy_level": "high"}).get_json()
    task_id = created["task"]["id"]

    split = client.post(f"/api/tasks/{task_id}/split", json={"tasks": [{"name": "Pack"}, {"name": "Clean"}]})
    assert split.status_code == 201
    assert [t["energy_level"] for t in split.get_json()] == ["high", "high"]

    assert client.delete(f"/api/tasks/{task_id}").status_code == 204


def test_cycles_and_phase(client):
    assert client.post("/api/cycles", json={}).status_code == 400

    start = _days_from_now(-3)
    response = client.post("/api/cycles", json={"start_date": start})
    assert response.status_code == 201
    assert response.get_json()["cycle"]["start_date"] == start

    phase = client.get(f"/api/phase?date={start}").get_json()
    assert phase["phase"] == "menstrual"
    assert phase["cycle_day"] == 1

    stats = client.get("/api/cycles/stats").get_json()
    assert stats["total_cycles_logged"] == 1
    assert len(client.get("/api/cycles").get_json()) == 1


def test_suggestion_endpoints(client):
    client.post("/api/cycles", json={"start_date": _days_from_now(-3)})

    assert client.get("/api/warnings").status_code == 200
    reschedule = client.get("/api/reschedule").get_json()
    assert reschedule["mode"] == "ask_permission"
    assert client.post("/api/reschedule/apply", json={}).get_json() == []
    assert client.get("/api/pull-forward").get_json() == []
    assert client.post("/api/pull-forward/apply", json={}).status_code == 400


def test_preferences_roundtrip(client):
    assert client.get("/api/preferences").get_json()["daily_task_limit"] == 4

    response = client.put("/api/preferences", json={"rescheduling_behavior": "automatic"})
    assert response.status_code == 200
    assert response.get_json()["rescheduling_behavior"] == "automatic"

    bad = client.put("/api/preferences", json={"rescheduling_behavior": "sometimes"})
    assert bad.status_code == 400


def test_store_failure_returns_502():
    app = create_app(store=BrokenStore(), config=PlannerConfig())
    response = app.test_client().get("/api/tasks")
    assert response.status_code == 502
    assert "error" in response.get_json()


def test_unknown_route_returns_json_404(client):
    response = client.get("/api/nothing")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}
