"""Tests for the admin management screens (classes, subjects, chapters,
study plans, feature flags)."""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import login_as
from tests.fakes import FakeLmsApi

CHAPTER = {
    "displayName": "Linear Equations",
    "name": "linear-equations",
    "classId": "class-7",
    "subjectId": "math",
    "order": 1,
    "description": "Solving for x",
    "duration": 45,
}

PLAN = {
    "weeklySchedule": [
        {"dayOfWeek": 1, "startTime": "16:00", "endTime": "17:30", "subjectId": "math"}
    ],
    "benchmarks": [{"type": "weekly", "target": 5, "metric": "hours"}],
    "effectiveFrom": "2026-10-01",
}


# ---- 403: wrong role ----


def test_student_is_redirected_from_admin(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    resp = client.get("/admin/classes")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/student/dashboard"


def test_teacher_cannot_manage_classes(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "teacher", user_id="tch-1")
    # Teachers sit outside /admin, so the gate redirects before the role check
    assert client.get("/admin/classes").status_code == 307


# ---- classes ----


def test_list_classes_is_cached_until_mutation(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("GET", "/classes", [{"_id": "c1"}])
    lms.add("POST", "/classes", {"_id": "c2"}, status=201)

    client.get("/admin/classes")
    client.get("/admin/classes")
    assert len(lms.calls_to("GET", "/classes")) == 1

    resp = client.post("/admin/classes", json={"name": "grade-8", "displayName": "Grade 8"})
    assert resp.status_code == 201
    client.get("/admin/classes")
    assert len(lms.calls_to("GET", "/classes")) == 2


def test_create_class_rejects_bad_system_name(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    resp = client.post("/admin/classes", json={"name": "Grade 8", "displayName": "Grade 8"})
    assert resp.status_code == 422
    assert lms.calls_to("POST", "/classes") == []


def test_create_class_sends_assessment_criteria(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/classes", {"_id": "c2"}, status=201)
    client.post(
        "/admin/classes",
        json={
            "name": "grade-8",
            "displayName": "Grade 8",
            "assessmentCriteria": {"aptitudeTest": {"passingPercentage": 70}},
        },
    )
    sent = lms.calls_to("POST", "/classes")[0].body
    assert sent["assessmentCriteria"]["aptitudeTest"]["passingPercentage"] == 70
    assert sent["assessmentCriteria"]["chapterTests"]["attemptsAllowed"] == 1


def test_add_subject_to_class(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/classes/c1/subjects", {"ok": True}, status=201)
    resp = client.post("/admin/classes/c1/subjects", json={"subjectId": "math"})
    assert resp.status_code == 201
    assert lms.calls[-1].body == {"subjectId": "math"}


def test_missing_class_is_404(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    assert client.get("/admin/classes/nope").status_code == 404


def test_duplicate_class_message_reaches_admin(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/classes", {"message": "Class name already exists"}, status=400)
    resp = client.post("/admin/classes", json={"name": "grade-8", "displayName": "Grade 8"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Class name already exists"


# ---- subjects & chapters ----


def test_subjects_filtered_by_class(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("GET", "/subjects/class/class-7", [{"_id": "math"}])
    resp = client.get("/admin/subjects", params={"classId": "class-7"})
    assert resp.json() == [{"_id": "math"}]


def test_create_chapter(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/chapters", {"_id": "ch-1"}, status=201)
    resp = client.post("/admin/chapters", json=CHAPTER)
    assert resp.status_code == 201
    assert lms.calls_to("POST", "/chapters")[0].body["name"] == "linear-equations"


def test_create_chapter_validation(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    assert client.post("/admin/chapters", json={**CHAPTER, "order": 0}).status_code == 422
    assert client.post("/admin/chapters", json={**CHAPTER, "description": "x"}).status_code == 422


def test_reorder_chapters(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/chapters/reorder", {"ok": True})
    resp = client.post(
        "/admin/chapters/reorder",
        json={"subjectId": "math", "chapters": [{"id": "ch-2", "order": 1}, {"id": "ch-1", "order": 2}]},
    )
    assert resp.status_code == 200
    assert lms.calls[-1].body["chapters"] == [{"id": "ch-2", "order": 1}, {"id": "ch-1", "order": 2}]


def test_chapter_search(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("GET", "/chapters", [])
    client.get("/admin/chapters", params={"search": "algebra"})
    assert lms.calls_to("GET", "/chapters")[0].params == {"search": "algebra"}


def test_chapter_dependencies_are_fresh(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("GET", "/chapters/ch-1/dependencies", {"lectures": 3})
    client.get("/admin/chapters/ch-1/dependencies")
    client.get("/admin/chapters/ch-1/dependencies")
    assert len(lms.calls_to("GET", "/chapters/ch-1/dependencies")) == 2


# ---- study plans ----


def test_create_study_plan(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/study-plans/schedules/stu-1", {"_id": "plan-1"}, status=201)
    resp = client.post("/admin/study-plans/stu-1", json=PLAN)
    assert resp.status_code == 201
    sent = lms.calls[-1].body
    assert sent["studentId"] == "stu-1"
    assert sent["weeklySchedule"][0]["startTime"] == "16:00"


def test_study_plan_slot_must_end_after_start(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    slot = {"dayOfWeek": 1, "startTime": "17:00", "endTime": "16:00", "subjectId": "math"}
    resp = client.post("/admin/study-plans/stu-1", json={**PLAN, "weeklySchedule": [slot]})
    assert resp.status_code == 422


def test_study_plan_needs_a_slot(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    resp = client.post("/admin/study-plans/stu-1", json={**PLAN, "weeklySchedule": []})
    assert resp.status_code == 422


def test_weekly_progress_week_bounds(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("GET", "/study-progress/stu-1/weekly/2026/42", {"hours": 4})
    assert client.get("/admin/study-plans/stu-1/weekly/2026/42").json() == {"hours": 4}
    assert client.get("/admin/study-plans/stu-1/weekly/2026/54").status_code == 422


def test_study_session_lifecycle(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("POST", "/study-sessions/stu-1/start", {"_id": "ss-1"}, status=201)
    lms.add("PUT", "/study-sessions/stu-1/end/ss-1", {"_id": "ss-1", "isCompleted": True})

    started = client.post("/admin/study-plans/stu-1/sessions", json={"subjectId": "math"})
    assert started.status_code == 201
    ended = client.put(
        "/admin/study-plans/stu-1/sessions/ss-1/end", json={"topicsCovered": ["fractions"]}
    )
    assert ended.json()["isCompleted"] is True


# ---- feature flags ----


def test_list_feature_flags_asks_for_system_settings(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("GET", "/settings", [{"_id": "f1", "key": "dark_mode"}])
    client.get("/admin/feature-flags")
    assert lms.calls_to("GET", "/settings")[0].params == {"type": "system"}


def test_toggle_feature_flag(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "admin")
    lms.add("PATCH", "/settings/f1", {"_id": "f1", "value": True})
    resp = client.patch("/admin/feature-flags/f1/toggle", json={"value": True})
    assert resp.json()["value"] is True


def test_any_user_reads_enabled_flags(client: TestClient, lms: FakeLmsApi) -> None:
    login_as(client, lms, "student")
    lms.add("GET", "/feature-flags/client/enabled", [{"key": "dark_mode"}])
    assert client.get("/feature-flags/enabled").json() == [{"key": "dark_mode"}]


def test_enabled_flags_need_a_session(client: TestClient) -> None:
    assert client.get("/feature-flags/enabled").status_code == 307
