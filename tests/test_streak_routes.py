import importlib
from datetime import date
from types import SimpleNamespace

import supabase
from fastapi.testclient import TestClient

from app.services.streak_sessions import StreakSessionRegistry
from app.services.streak_store import InMemoryStreakBackend, StreakStore


class DummyAuth:
    def get_user(self, token):
        if token == "valid-token":
            return SimpleNamespace(user=SimpleNamespace(id="user-1", email="u@example.com"))
        return SimpleNamespace(user=None)


class DummyClient:
    def __init__(self):
        self.auth = DummyAuth()


AUTH = {"Authorization": "Bearer valid-token"}


def _build_app(monkeypatch, today=date(2024, 1, 10)):
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.setenv("SUPABASE_URL", "http://example.com")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
    monkeypatch.delenv("UPSTASH_REDIS_REST_URL", raising=False)
    monkeypatch.setattr(supabase, "create_client", lambda url, key: DummyClient())

    from app import main

    importlib.reload(main)

    cache = InMemoryStreakBackend()
    clock = {"today": today}
    main.app.state.streak_sessions = StreakSessionRegistry(StreakStore(cache=cache))
    main.app.state.today = lambda: clock["today"]
    return main, cache, clock


def test_requests_without_session_are_rejected_without_side_effects(monkeypatch):
    main, cache, _ = _build_app(monkeypatch)
    client = TestClient(main.app)

    response = client.post("/api/streak/activity", json={"duration": 10})

    assert response.status_code == 401
    payload = response.json()
    assert payload["error_code"] == "AUTH_REQUIRED"
    assert payload["request_id"] == response.headers["x-request-id"]
    assert cache.entries == {}


def test_invalid_token_is_treated_as_no_session(monkeypatch):
    main, cache, _ = _build_app(monkeypatch)
    client = TestClient(main.app)

    response = client.get("/api/streak", headers={"Authorization": "Bearer expired"})

    assert response.status_code == 401
    assert cache.entries == {}


def test_first_visit_starts_streak(monkeypatch):
    main, cache, _ = _build_app(monkeypatch)
    client = TestClient(main.app)

    response = client.get("/api/streak", headers=AUTH)

    assert response.status_code == 200
    payload = response.json()
    assert payload["current_streak"] == 1
    assert payload["longest_streak"] == 1
    assert payload["streak_start_date"] == "2024-01-10"
    assert payload["motivational_message"].startswith("Great start!")
    assert cache.entries["user-1"]["lastLearningDate"] == "2024-01-10"


def test_activity_accumulates_and_returns_notifications(monkeypatch):
    main, cache, clock = _build_app(monkeypatch)
    client = TestClient(main.app)

    client.post("/api/streak/activity", json={"duration": 10}, headers=AUTH)
    response = client.post("/api/streak/activity", json={"duration": 10}, headers=AUTH)

    assert response.status_code == 200
    payload = response.json()
    assert payload["learning_history"] == [{"date": "2024-01-10", "duration": 20.0, "lessons_completed": 2}]
    assert payload["notifications"] == []

    clock["today"] = date(2024, 1, 11)
    response = client.post(
        "/api/streak/activity",
        json={"duration": 5, "lessons_completed": 3},
        headers=AUTH,
    )

    payload = response.json()
    assert payload["current_streak"] == 2
    assert payload["notifications"] == [
        {"type": "success", "message": "Two days in a row! You're building momentum. Keep going! 💪"}
    ]
    assert cache.entries["user-1"]["learningHistory"][-1] == {
        "date": "2024-01-11",
        "duration": 5.0,
        "lessonsCompleted": 3,
    }


def test_negative_duration_is_rejected(monkeypatch):
    main, cache, _ = _build_app(monkeypatch)
    client = TestClient(main.app)

    response = client.post("/api/streak/activity", json={"duration": -1}, headers=AUTH)

    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_REQUEST"
    assert cache.entries == {}


def test_weekly_message_and_reset_endpoints(monkeypatch):
    main, cache, _ = _build_app(monkeypatch)
    client = TestClient(main.app)

    weekly = client.get("/api/streak/weekly", headers=AUTH).json()["days"]
    assert len(weekly) == 7
    assert weekly[-1] == {"date": "2024-01-10", "day": "Wed", "learned": True, "duration": 0}
    assert weekly[0]["learned"] is False

    message = client.get("/api/streak/message", headers=AUTH).json()
    assert message["current_streak"] == 1

    reset = client.post("/api/streak/reset", headers=AUTH).json()
    assert reset["current_streak"] == 0
    assert reset["learning_history"] == []
    assert cache.entries["user-1"]["currentStreak"] == 0


def test_metrics_requires_session(monkeypatch):
    main, _, _ = _build_app(monkeypatch)
    client = TestClient(main.app)

    assert client.get("/metrics").status_code == 401

    client.get("/api/streak", headers=AUTH)
    response = client.get("/metrics", headers=AUTH)

    assert response.status_code == 200
    assert 'learning_streak_http_requests_total{status="2xx"}' in response.text


def test_malformed_stored_record_does_not_break_the_session(monkeypatch):
    main, cache, _ = _build_app(monkeypatch)
    cache.entries["user-1"] = {"currentStreak": 2, "learningHistory": [None]}
    client = TestClient(main.app)

    first = client.get("/api/streak", headers=AUTH)
    second = client.post("/api/streak/activity", json={"duration": 4}, headers=AUTH)

    assert first.status_code == 200
    assert first.json()["current_streak"] == 1
    assert second.status_code == 200
    assert second.json()["learning_history"] == [{"date": "2024-01-10", "duration": 4.0, "lessons_completed": 1}]
