from fastapi.testclient import TestClient
from sqlmodel import Session, select

from engcoach.models import CompletedSet, WorkoutSession
from engcoach.services.session_registry import get_registry


def _url(plan, suffix: str = "") -> str:
    return f"/api/athletes/{plan.athlete_id}/workouts/{plan.workout_id}/session{suffix}"


def _start(client: TestClient, plan) -> dict:
    assert client.post(_url(plan, "/load")).status_code == 200
    response = client.post(_url(plan, "/start"))
    assert response.status_code == 201
    return response.json()


def test_load_returns_grouped_prescription(client: TestClient, plan):
    response = client.post(_url(plan, "/load"))
    assert response.status_code == 200
    body = response.json()

    assert body["state"] == "no_session"
    assert body["pending"] is None
    assert body["total_sets_count"] == 10
    groups = body["groups"]
    assert [[e["exercise_name"] for e in g["exercises"]] for g in groups] == [
        ["Bench Press"],
        ["Barbell Row", "Pull-up"],
    ]
    assert groups[1]["group_type"] == "superset"
    assert [s["weight"] for s in groups[0]["exercises"][0]["sets"]] == ["60", "70", "75", "75"]


def test_load_unknown_workout(client: TestClient, plan):
    response = client.post(f"/api/athletes/{plan.athlete_id}/workouts/9999/session/load")
    assert response.status_code == 404
    assert get_registry().get(plan.athlete_id, 9999) is None


def test_load_unknown_athlete(client: TestClient, plan):
    response = client.post(f"/api/athletes/9999/workouts/{plan.workout_id}/session/load")
    assert response.status_code == 404
    assert get_registry().get(9999, plan.workout_id) is None


def test_start_before_load_is_not_found(client: TestClient, plan):
    assert client.post(_url(plan, "/start")).status_code == 404
    assert get_registry().get(plan.athlete_id, plan.workout_id) is None


def test_reads_do_not_create_controllers(client: TestClient, plan):
    registry = get_registry()
    for offset in range(5):
        response = client.get(f"/api/athletes/{9000 + offset}/workouts/{8000 + offset}/session")
        assert response.status_code == 404
        assert registry.get(9000 + offset, 8000 + offset) is None

    assert client.get(_url(plan)).status_code == 404
    client.post(_url(plan, "/load"))
    assert client.get(_url(plan)).status_code == 200

    client.delete(_url(plan))
    assert registry.get(plan.athlete_id, plan.workout_id) is None
    assert client.get(_url(plan)).status_code == 404


def test_full_session_flow(client: TestClient, session: Session, plan):
    started = _start(client, plan)
    assert started["state"] == "started"
    session_id = started["session_id"]

    assert client.post(_url(plan, "/start")).status_code == 409

    response = client.put(_url(plan, f"/sets/{plan.row_id}/0"), json={"weight": "50"})
    assert response.json() == {"set_index": 0, "weight": "50", "reps": "10", "is_completed": False}

    toggled = client.post(_url(plan, f"/sets/{plan.row_id}/0/toggle"))
    assert toggled.status_code == 200
    body = toggled.json()
    assert body["is_completed"] is True
    assert body["completed_sets_count"] == 1
    assert body["rest"]["is_active"] is True
    assert body["rest"]["total_seconds"] == 60

    view = client.get(_url(plan)).json()
    assert view["completed_sets_count"] == 1
    assert view["groups"][1]["exercises"][0]["sets"][0]["is_completed"] is True

    countdown = client.post(_url(plan, "/countdown"), json={"seconds": 30})
    assert countdown.json()["is_active"] is True
    assert client.get(_url(plan)).json()["rest"]["is_active"] is False

    completed = client.post(_url(plan, "/complete"), json={"elapsed_seconds": 1800})
    assert completed.json() == {"duration_seconds": 1800}
    assert session.get(WorkoutSession, session_id).duration_seconds == 1800


def test_toggle_twice_uncompletes(client: TestClient, session: Session, plan):
    _start(client, plan)
    client.post(_url(plan, f"/sets/{plan.bench_id}/0/toggle"))
    response = client.post(_url(plan, f"/sets/{plan.bench_id}/0/toggle"))
    assert response.json()["is_completed"] is False
    assert session.exec(select(CompletedSet)).all() == []


def test_rest_override(client: TestClient, plan):
    _start(client, plan)
    assert client.put(_url(plan, "/rest-override"), json={"seconds": 20}).json()["custom_rest_seconds"] == 20

    toggled = client.post(_url(plan, f"/sets/{plan.bench_id}/0/toggle"), json={"rest_seconds": 200})
    assert toggled.json()["rest"]["total_seconds"] == 20

    assert client.post(_url(plan, "/rest/skip")).status_code == 204
    assert client.get(_url(plan)).json()["rest"]["is_active"] is False

    assert client.put(_url(plan, "/rest-override"), json={"seconds": -5}).status_code == 422


def test_cancel_removes_everything(client: TestClient, session: Session, plan):
    session_id = _start(client, plan)["session_id"]
    for index in range(3):
        client.post(_url(plan, f"/sets/{plan.pullup_id}/{index}/toggle"))
    assert len(session.exec(select(CompletedSet)).all()) == 3

    assert client.post(_url(plan, "/cancel")).status_code == 204

    assert session.exec(select(CompletedSet)).all() == []
    assert session.get(WorkoutSession, session_id) is None
    assert client.get(_url(plan)).json()["state"] == "no_session"


def test_pending_session_resume(client: TestClient, plan):
    session_id = _start(client, plan)["session_id"]
    client.post(_url(plan, f"/sets/{plan.pullup_id}/1/toggle"))

    # The screen goes away without finishing the workout
    assert client.delete(_url(plan)).status_code == 204

    loaded = client.post(_url(plan, "/load")).json()
    assert loaded["state"] == "pending_recovery"
    assert loaded["pending"]["id"] == session_id
    assert loaded["pending"]["completed_sets_count"] == 1

    resumed = client.post(_url(plan, "/pending/resume")).json()
    assert resumed["state"] == "started"
    assert resumed["session_id"] == session_id
    pullup_sets = resumed["groups"][1]["exercises"][1]["sets"]
    assert [s["is_completed"] for s in pullup_sets] == [False, True, False]


def test_pending_session_discard_and_finish(client: TestClient, session: Session, plan):
    first = _start(client, plan)["session_id"]
    client.delete(_url(plan))
    client.post(_url(plan, "/load"))
    assert client.post(_url(plan, "/pending/discard")).json()["state"] == "no_session"
    assert session.get(WorkoutSession, first) is None

    second = client.post(_url(plan, "/start")).json()["session_id"]
    client.delete(_url(plan))
    client.post(_url(plan, "/load"))
    finished = client.post(_url(plan, "/pending/finish"))
    assert finished.status_code == 200
    assert session.get(WorkoutSession, second).end_time is not None


def test_pending_actions_require_pending_state(client: TestClient, plan):
    client.post(_url(plan, "/load"))
    assert client.post(_url(plan, "/pending/resume")).status_code == 409


def test_feedback_endpoints(client: TestClient, plan):
    _start(client, plan)
    saved = client.put(
        _url(plan, f"/feedback/{plan.row_id}"),
        json={"pain_level": 3, "pump_level": 4, "workload_level": 5, "notes": "heavy"},
    )
    assert saved.status_code == 200
    assert saved.json()["workload_level"] == 5

    bad = client.put(_url(plan, f"/feedback/{plan.row_id}"), json={"pain_level": 9})
    assert bad.status_code == 422
    assert bad.json()["missing"] == ["pain_level"]

    client.post(_url(plan, "/complete"))
    client.post(_url(plan, "/load"))

    previous = client.get(_url(plan, f"/feedback/{plan.row_id}/previous")).json()
    assert previous["feedback"]["notes"] == "heavy"
    assert [r["action"] for r in previous["recommendations"]] == ["decrease_weight", "decrease_weight"]


def test_countdown_controls(client: TestClient, plan):
    _start(client, plan)
    client.post(_url(plan, "/countdown"), json={"seconds": 60})
    assert client.post(_url(plan, "/countdown/pause")).json()["is_paused"] is True
    assert client.post(_url(plan, "/countdown/resume")).json()["is_paused"] is False
    assert client.post(_url(plan, "/countdown/skip")).status_code == 204
    assert client.post(_url(plan, "/countdown"), json={"seconds": 0}).status_code == 422


def test_request_id_header(client: TestClient, plan):
    client.post(_url(plan, "/load"))
    response = client.get(_url(plan), headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
