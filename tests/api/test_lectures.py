"""Tests for lecture viewing, debounced progress sync and the subject gate.

Debounce timers run on the TestClient's event loop thread, so the tests
wait in real time (a fraction of a second) for syncs to reach the fake
LMS API.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from portal.context import PortalContext
from portal.main import create_app
from portal.services.session_tokens import COOKIE_NAME, create_session_token
from tests.conftest import TEST_DEBOUNCE_SECONDS, login_as
from tests.fakes import FakeLmsApi

LECTURE = "/student/lectures/lec-1"
PROGRESS_PATH = "/lectures/lec-1/progress"
COMPLETE_PATH = "/lectures/lec-1/complete"


def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _quiet() -> None:
    """Long enough for any stray debounce timer to have fired."""
    time.sleep(TEST_DEBOUNCE_SECONDS * 3)


def _lecture_routes(lms: FakeLmsApi, progress: float = 20) -> None:
    lms.add(
        "GET",
        "/lectures/lec-1/details",
        {"_id": "lec-1", "title": "Fractions", "studentProgress": {"progress": progress}},
    )
    lms.add("GET", "/lectures/lec-1/transcript", [{"time": 0, "text": "Hello"}])
    lms.add("GET", "/lectures/lec-1/resources", [])
    lms.add("GET", "/notes/lecture/lec-1", [])
    lms.add("POST", PROGRESS_PATH, {"ok": True})
    lms.add("POST", COMPLETE_PATH, {"ok": True})
    # Subject gate: lecture → chapter → subject, access granted
    lms.add("GET", "/lectures/lec-1", {"_id": "lec-1", "chapterId": "ch-1"})
    lms.add("GET", "/chapters/ch-1", {"_id": "ch-1", "subjectId": "math"})
    lms.add("GET", "/enrollment/access/stu-1/math", {"hasAccess": True})


def _open(client: TestClient, lms: FakeLmsApi, progress: float = 20) -> dict:
    login_as(client, lms, "student")
    _lecture_routes(lms, progress)
    resp = client.get(LECTURE)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _sent(lms: FakeLmsApi) -> list[dict]:
    return [c.body for c in lms.calls_to("POST", PROGRESS_PATH)]


# ---- lecture page ----


def test_lecture_page_composes_sections_and_seeds_progress(
    client: TestClient, lms: FakeLmsApi
) -> None:
    body = _open(client, lms, progress=20)
    assert body["lecture"]["title"] == "Fractions"
    assert body["transcript"]["data"] == [{"time": 0, "text": "Hello"}]
    assert body["notes"] == {"data": [], "error": None}
    assert body["progress"]["progress"] == 20
    assert body["progress"]["isCompleted"] is False
    assert body["progress"]["hasUnsyncedChanges"] is False
    assert lms.calls_to("GET", "/lectures/lec-1/details")[0].params == {"studentId": "stu-1"}


def test_opening_a_view_sends_nothing(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms)
    _quiet()
    assert _sent(lms) == []


def test_lecture_not_found(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    resp = client.get("/student/lectures/missing")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Not found"}


def test_failed_transcript_section(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    _lecture_routes(lms)
    lms.add("GET", "/lectures/lec-1/transcript", {"message": "x"}, status=500)
    body = client.get(LECTURE).json()
    assert body["transcript"]["data"] is None
    assert body["transcript"]["error"]
    assert body["lecture"]["_id"] == "lec-1"


def test_lectures_by_chapter(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/lectures/byChapter/ch-1", [{"_id": "b", "order": 2}, {"_id": "a", "order": 1}])
    resp = client.get("/student/chapters/ch-1/lectures")
    assert [lec["_id"] for lec in resp.json()] == ["a", "b"]


# ---- progress observations ----


def test_progress_requires_open_view(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    resp = client.post(f"{LECTURE}/progress", json={"progress": 30})
    assert resp.status_code == 409
    assert client.get(f"{LECTURE}/progress").status_code == 409


def test_progress_is_merged_immediately(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms, progress=20)
    resp = client.post(f"{LECTURE}/progress", json={"progress": 10, "currentTime": 42.5})
    assert resp.status_code == 202
    body = resp.json()
    assert body["progress"] == 20  # regressions never lower progress
    assert body["currentTime"] == 42.5
    assert body["syncPending"] is True
    assert body["hasUnsyncedChanges"] is True


def test_progress_out_of_range_is_422(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms)
    assert client.post(f"{LECTURE}/progress", json={"progress": 101}).status_code == 422
    assert client.post(f"{LECTURE}/progress", json={"currentPage": -1}).status_code == 422


def test_burst_of_observations_syncs_once(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms, progress=0)
    for value in (10, 20, 30, 40, 50):
        client.post(f"{LECTURE}/progress", json={"progress": value})

    assert _wait_until(lambda: len(_sent(lms)) == 1)
    _quiet()
    assert _sent(lms) == [{"studentId": "stu-1", "progress": 50, "isCompleted": False}]

    state = client.get(f"{LECTURE}/progress").json()
    assert state["syncPending"] is False
    assert state["hasUnsyncedChanges"] is False
    assert state["lastSynced"]["progress"] == 50


def test_regression_then_completion(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms, progress=0)
    client.post(f"{LECTURE}/progress", json={"progress": 30})
    client.post(f"{LECTURE}/progress", json={"progress": 20})
    assert _wait_until(lambda: len(_sent(lms)) == 1)
    assert _sent(lms)[0]["progress"] == 30
    assert _sent(lms)[0]["isCompleted"] is False

    client.post(f"{LECTURE}/progress", json={"progress": 95})
    assert _wait_until(lambda: len(_sent(lms)) == 2)
    _quiet()
    assert _sent(lms)[1]["progress"] == 95
    assert _sent(lms)[1]["isCompleted"] is True
    assert len(lms.calls_to("POST", COMPLETE_PATH)) == 1


def test_explicit_completion_is_sticky(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms, progress=0)
    client.post(f"{LECTURE}/progress", json={"isCompleted": True})
    body = client.post(f"{LECTURE}/progress", json={"isCompleted": False, "progress": 5}).json()
    assert body["isCompleted"] is True


def test_already_completed_lecture_is_not_marked_again(
    client: TestClient, lms: FakeLmsApi
) -> None:
    _open(client, lms, progress=100)
    client.post(f"{LECTURE}/progress", json={"currentTime": 12})
    assert _wait_until(lambda: len(_sent(lms)) == 1)
    _quiet()
    assert lms.calls_to("POST", COMPLETE_PATH) == []


def test_sync_failure_is_not_surfaced(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms, progress=0)
    lms.add("POST", PROGRESS_PATH, {"message": "db down"}, status=500)
    before = REGISTRY.get_sample_value("progress_syncs_total", {"result": "failed"}) or 0.0

    resp = client.post(f"{LECTURE}/progress", json={"progress": 40})
    assert resp.status_code == 202
    assert _wait_until(lambda: len(_sent(lms)) == 1)
    _quiet()

    state = client.get(f"{LECTURE}/progress").json()
    assert state["progress"] == 40
    assert state["hasUnsyncedChanges"] is True
    after = REGISTRY.get_sample_value("progress_syncs_total", {"result": "failed"}) or 0.0
    assert after - before == 1


# ---- closing the view ----


def test_close_sends_final_sync_with_latest_state(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms, progress=0)
    client.post(f"{LECTURE}/progress", json={"progress": 35, "currentPage": 3})

    resp = client.post(f"{LECTURE}/close")

    assert resp.status_code == 202
    assert resp.json() == {"closed": True, "final_sync": True}
    assert _wait_until(lambda: len(_sent(lms)) == 1)
    _quiet()
    assert _sent(lms) == [
        {"studentId": "stu-1", "progress": 35, "isCompleted": False, "currentPage": 3}
    ]
    assert client.post(f"{LECTURE}/progress", json={"progress": 40}).status_code == 409


def test_close_without_changes(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms)
    resp = client.post(f"{LECTURE}/close")
    assert resp.json() == {"closed": True, "final_sync": False}
    _quiet()
    assert _sent(lms) == []


def test_logout_flushes_open_views(
    client: TestClient, lms: FakeLmsApi, context: PortalContext
) -> None:
    _open(client, lms, progress=0)
    client.post(f"{LECTURE}/progress", json={"progress": 60})
    client.post("/logout")
    assert _wait_until(lambda: len(_sent(lms)) == 1)
    assert len(context.registry) == 0


def test_shutdown_flushes_open_views(context: PortalContext, lms: FakeLmsApi) -> None:
    with TestClient(create_app(context), follow_redirects=False) as c:
        login_as(c, lms, "student")
        _lecture_routes(lms, progress=0)
        c.get(LECTURE)
        c.post(f"{LECTURE}/progress", json={"progress": 70})
    # Leaving the with-block runs the lifespan shutdown
    assert _sent(lms) == [{"studentId": "stu-1", "progress": 70, "isCompleted": False}]


# ---- subject access gate ----


def test_subject_page_when_access_granted(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/enrollment/access/stu-1/math", {"hasAccess": True})
    lms.add("GET", "/subjects/math", {"_id": "math", "name": "Mathematics"})
    lms.add("GET", "/chapters/subject/math", [{"_id": "ch-1"}])
    lms.add("GET", "/student-progress/stu-1/subject/math", {"progress": 12})

    resp = client.get("/student/subjects/math")

    assert resp.status_code == 200
    body = resp.json()
    assert body["subject"]["name"] == "Mathematics"
    assert body["chapters"]["data"] == [{"_id": "ch-1"}]
    assert body["progress"]["data"] == {"progress": 12}


def test_subject_page_when_access_denied(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/enrollment/access/stu-1/math", {"hasAccess": False, "reason": "Payment required"})
    lms.add("GET", "/enrollment/pending-tests/stu-1", [{"assessmentId": "apt-1", "subjectId": "math"}])
    lms.add("GET", "/assessments/pending/stu-1", [])

    resp = client.get("/student/subjects/math")

    assert resp.status_code == 307
    assert resp.headers["location"] == "/aptitude-test"
    assert lms.calls_to("GET", "/subjects/math") == []
    # The redirect lands on a real page listing what is pending
    pending = client.get(resp.headers["location"])
    assert pending.status_code == 200
    assert pending.json()["pendingTests"][0]["id"] == "apt-1"


def test_subject_gate_fails_open(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/enrollment/access/stu-1/math", {"message": "x"}, status=503)
    lms.add("GET", "/subjects/math", {"_id": "math"})
    lms.add("GET", "/chapters/subject/math", [])
    lms.add("GET", "/student-progress/stu-1/subject/math", {})

    assert client.get("/student/subjects/math").status_code == 200


def test_lecture_gated_by_its_own_subject(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    _lecture_routes(lms)
    lms.add("GET", "/enrollment/access/stu-1/math", {"hasAccess": False})

    resp = client.get(LECTURE)

    assert resp.status_code == 307
    assert resp.headers["location"] == "/aptitude-test"
    assert lms.calls_to("GET", "/lectures/lec-1/details") == []


def test_lecture_subject_query_cannot_override_lookup(
    client: TestClient, lms: FakeLmsApi
) -> None:
    login_as(client, lms, "student")
    _lecture_routes(lms)
    lms.add("GET", "/enrollment/access/stu-1/math", {"hasAccess": False})
    lms.add("GET", "/enrollment/access/stu-1/art", {"hasAccess": True})

    resp = client.get(LECTURE, params={"subjectId": "art"})

    assert resp.status_code == 307
    assert lms.calls_to("GET", "/enrollment/access/stu-1/art") == []


def test_lecture_subject_lookup_is_cached(client: TestClient, lms: FakeLmsApi) -> None:
    _open(client, lms)
    client.get(LECTURE)
    assert len(lms.calls_to("GET", "/lectures/lec-1")) == 1
    assert len(lms.calls_to("GET", "/chapters/ch-1")) == 1
    # Access itself is asked every time
    assert len(lms.calls_to("GET", "/enrollment/access/stu-1/math")) == 2


def test_chapter_page_gated_by_chapter_subject(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/chapters/ch-2", {"_id": "ch-2", "subject": {"_id": "sci"}})
    lms.add("GET", "/enrollment/access/stu-1/sci", {"hasAccess": False})

    resp = client.get("/student/chapters/ch-2/lectures")

    assert resp.status_code == 307
    assert resp.headers["location"] == "/aptitude-test"
    assert lms.calls_to("GET", "/lectures/byChapter/ch-2") == []


def test_failed_subject_lookup_fails_open(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    _lecture_routes(lms)
    lms.add("GET", "/lectures/lec-1", {"message": "x"}, status=503)
    before = REGISTRY.get_sample_value(
        "subject_access_checks_total", labels={"decision": "error_allowed"}
    ) or 0.0

    assert client.get(LECTURE).status_code == 200
    after = REGISTRY.get_sample_value(
        "subject_access_checks_total", labels={"decision": "error_allowed"}
    )
    assert after - before == 1


# ---- session end ----


def test_expired_session_tears_down_lecture_views(
    client: TestClient, lms: FakeLmsApi, context: PortalContext
) -> None:
    _open(client, lms, progress=0)
    client.post(f"{LECTURE}/progress", json={"progress": 40})
    assert len(context.registry) == 1

    # The store forgets the session (TTL), the cookie lingers
    context.sessions._sessions.clear()
    assert client.get("/student/dashboard").status_code == 307

    assert len(context.registry) == 0
    assert _wait_until(lambda: len(_sent(lms)) == 1)
    assert _sent(lms) == [{"studentId": "stu-1", "progress": 40, "isCompleted": False}]


def test_expired_cookie_tears_down_lecture_views(
    client: TestClient, lms: FakeLmsApi, context: PortalContext
) -> None:
    _open(client, lms)
    (session,) = context.sessions._sessions.values()
    client.cookies.set(
        COOKIE_NAME,
        create_session_token(
            session, secret=context.settings.session_secret, ttl_seconds=-1
        ),
    )

    assert client.get("/student/dashboard").status_code == 307
    assert len(context.registry) == 0


# ---- notes ----


def test_note_lifecycle(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/notes/lecture/lec-1", {"notes": [{"_id": "n1", "content": "old"}]})
    lms.add("POST", "/notes/lectures/lec-1", {"_id": "n2", "content": "new"}, status=201)
    lms.add("PUT", "/notes/n2", {"_id": "n2", "content": "edited"})
    lms.add("DELETE", "/notes/n2", {"deleted": True})

    assert client.get(f"{LECTURE}/notes").json() == [{"_id": "n1", "content": "old"}]

    created = client.post(f"{LECTURE}/notes", json={"content": "new", "timestamp": 12.5})
    assert created.status_code == 201
    assert lms.calls_to("POST", "/notes/lectures/lec-1")[0].body == {
        "content": "new",
        "timestamp": 12.5,
    }

    assert client.put("/student/notes/n2", json={"content": "edited"}).json()["content"] == "edited"
    assert client.delete("/student/notes/n2").status_code == 200


def test_empty_note_is_422(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    assert client.post(f"{LECTURE}/notes", json={"content": ""}).status_code == 422
