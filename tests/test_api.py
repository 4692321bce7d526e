"""HTTP tests for the focus API using FastAPI's TestClient.

The scheduler is mocked so no background ticks run during a test.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tasko_focus.config import FocusConfig
from tasko_focus.main import create_app


@pytest.fixture
def client(tmp_path):
    config = FocusConfig(db_path=tmp_path / "focus.db", log_level="INFO")
    scheduler = MagicMock()
    scheduler.get_job = MagicMock(return_value=None)
    app = create_app(config, scheduler=scheduler)
    with TestClient(app) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestTimerEndpoints:
    def test_initial_state(self, client):
        body = client.get("/api/timer").json()
        assert body["durationSeconds"] == 1500
        assert body["remainingSeconds"] == 1500
        assert body["isRunning"] is False
        assert body["phase"] == "idle"
        assert body["display"] == "25:00"

    def test_start_pause_reset(self, client):
        started = client.post("/api/timer/start").json()
        assert started["isRunning"] is True
        assert started["startedAtEpochMillis"] is not None

        paused = client.post("/api/timer/pause").json()
        assert paused["isRunning"] is False

        reset = client.post("/api/timer/reset").json()
        assert reset["phase"] == "idle"
        assert reset["startedAtEpochMillis"] is None

    def test_duration_clamped(self, client):
        body = client.post("/api/timer/duration", json={"seconds": 0}).json()
        assert body["durationSeconds"] == 1
        assert body["remainingSeconds"] == 1

    def test_adjust(self, client):
        body = client.post("/api/timer/adjust", json={"minutes": -5}).json()
        assert body["remainingSeconds"] == 1200
        assert body["durationSeconds"] == 1200

    def test_bad_body_rejected(self, client):
        response = client.post("/api/timer/adjust", json={"minutes": "lots"})
        assert response.status_code == 422


class TestRewardEndpoints:
    def test_snapshot(self, client):
        body = client.get("/api/rewards").json()
        assert body["totalFocusMinutes"] == 0
        assert body["rewardCount"] == 5
        assert body["nextRewardId"] == "dust"
        assert all(not r["unlocked"] for r in body["rewards"])

    def test_accumulate(self, client):
        body = client.post("/api/rewards/accumulate", json={"minutes": 30}).json()
        assert body["newlyUnlocked"] == ["dust", "nebula"]
        assert body["ledger"]["totalFocusMinutes"] == 30
        assert body["ledger"]["minutesToNext"] == 30

    def test_accumulate_negative(self, client):
        client.post("/api/rewards/accumulate", json={"minutes": 10})
        body = client.post("/api/rewards/accumulate", json={"minutes": -5}).json()
        assert body["newlyUnlocked"] == []
        assert body["ledger"]["totalFocusMinutes"] == 10

    def test_manual_unlock(self, client):
        body = client.post("/api/rewards/galaxy/unlock").json()
        assert body["changed"] is True
        galaxy = [r for r in body["ledger"]["rewards"] if r["id"] == "galaxy"][0]
        assert galaxy["unlocked"] is True

    def test_unknown_unlock_is_not_an_error(self, client):
        response = client.post("/api/rewards/quasar/unlock")
        assert response.status_code == 200
        assert response.json()["changed"] is False


class TestEventsAndLogs:
    def test_events_recorded(self, client):
        client.post("/api/timer/start")
        client.post("/api/timer/pause")
        events = client.get("/api/events", params={"limit": 5}).json()
        assert [e["event_type"] for e in events][:2] == ["timer_paused", "timer_started"]

    def test_logs_buffered(self, client):
        client.post("/api/timer/start")
        messages = [entry["message"] for entry in client.get("/api/logs").json()]
        assert any("Timer: started" in m for m in messages)


class TestBlockingEndpoints:
    def test_direct_update_and_check(self, client):
        client.post("/api/blocking", json={
            "resources": [{"id": "r1", "url": "https://www.youtube.com", "type": "website"}],
            "isBlocking": True,
        })
        assert client.get("/api/blocking/check", params={"url": "https://m.youtube.com/watch"}).json()["blocked"]
        assert not client.get("/api/blocking/check", params={"url": "https://docs.python.org"}).json()["blocked"]

    def test_update_from_tasks(self, client):
        body = client.post("/api/blocking/tasks", json={
            "tasks": [
                {"id": "t1", "timerStatus": "running", "blocked_resources": ["r1"]},
                {"id": "t2", "timerStatus": "paused", "blocked_resources": ["r2"]},
            ],
            "resources": [
                {"id": "r1", "url": "reddit.com"},
                {"id": "r2", "url": "twitter.com"},
            ],
        }).json()
        assert body["isBlocking"] is True
        assert [r["id"] for r in body["resources"]] == ["r1"]
        assert client.get("/api/blocking/check", params={"url": "https://old.reddit.com"}).json()["blocked"]
        assert not client.get("/api/blocking/check", params={"url": "https://twitter.com"}).json()["blocked"]
