"""Tests for the feature services layered on CachedService."""

from __future__ import annotations

import asyncio

from portal.services.cache import InMemoryCacheService
from portal.services.lectures import LectureProgressSink, LectureService, NoteService
from portal.services.resources import ChapterService, FeatureFlagService
from portal.services.students import StudentService
from portal.services.study_plans import StudyPlanService
from tests.fakes import FakeLmsApi


def _service(cls, lms: FakeLmsApi, cache: InMemoryCacheService | None = None):
    return cls(lms.client(), cache or InMemoryCacheService(), user_id="u-1", ttl_seconds=30)


# ---- lectures ----


def test_lectures_by_chapter_sorted_by_order() -> None:
    lms = FakeLmsApi()
    lms.add(
        "GET",
        "/lectures/byChapter/ch-1",
        [{"_id": "c", "order": 3}, {"_id": "x"}, {"_id": "a", "order": 1}, {"_id": "b", "order": 2}],
    )
    lectures = asyncio.run(_service(LectureService, lms).by_chapter("ch-1", "stu-1"))
    assert [lec["_id"] for lec in lectures] == ["a", "b", "c", "x"]
    assert lms.calls[0].params == {"studentId": "stu-1"}


def test_missing_transcript_is_empty() -> None:
    lms = FakeLmsApi()
    assert asyncio.run(_service(LectureService, lms).transcript("lec-1")) == []


def test_details_are_never_cached() -> None:
    lms = FakeLmsApi()
    lms.add("GET", "/lectures/lec-1/details", {"_id": "lec-1"})
    lectures = _service(LectureService, lms)

    async def scenario() -> None:
        await lectures.details("lec-1", "stu-1")
        await lectures.details("lec-1", "stu-1")

    asyncio.run(scenario())
    assert len(lms.calls_to("GET", "/lectures/lec-1/details")) == 2


def test_progress_sink_binds_student() -> None:
    lms = FakeLmsApi()
    lms.add("POST", "/lectures/lec-1/progress", {"ok": True})
    lms.add("POST", "/lectures/lec-1/complete", {"ok": True})
    sink = LectureProgressSink(_service(LectureService, lms), "stu-1")

    async def scenario() -> None:
        await sink.update_progress("lec-1", {"progress": 95, "isCompleted": True})
        await sink.mark_complete("lec-1")

    asyncio.run(scenario())
    update, complete = lms.calls
    assert update.body == {"studentId": "stu-1", "progress": 95, "isCompleted": True}
    assert complete.body == {"studentId": "stu-1"}


# ---- notes ----


def test_notes_accept_both_response_shapes() -> None:
    lms = FakeLmsApi()
    lms.add("GET", "/notes/lecture/lec-1", {"notes": [{"_id": "n1"}]})
    lms.add("GET", "/notes/lecture/lec-2", [{"_id": "n2"}])
    notes = _service(NoteService, lms)
    assert asyncio.run(notes.for_lecture("lec-1")) == [{"_id": "n1"}]
    assert asyncio.run(notes.for_lecture("lec-2")) == [{"_id": "n2"}]


def test_creating_a_note_invalidates_note_lists() -> None:
    lms = FakeLmsApi()
    lms.add("GET", "/notes/lecture/lec-1", [])
    lms.add("POST", "/notes/lectures/lec-1", {"_id": "n1"}, status=201)
    notes = _service(NoteService, lms)

    async def scenario() -> None:
        await notes.for_lecture("lec-1")
        await notes.create("lec-1", {"content": "remember this"})
        await notes.for_lecture("lec-1")

    asyncio.run(scenario())
    assert len(lms.calls_to("GET", "/notes/lecture/lec-1")) == 2


# ---- chapters ----


def test_reorder_posts_subject_and_orders() -> None:
    lms = FakeLmsApi()
    lms.add("POST", "/chapters/reorder", {"ok": True})
    chapters = _service(ChapterService, lms)
    asyncio.run(chapters.reorder("math", [{"id": "ch-1", "order": 2}, {"id": "ch-2", "order": 1}]))
    assert lms.calls[0].body == {
        "subjectId": "math",
        "chapters": [{"id": "ch-1", "order": 2}, {"id": "ch-2", "order": 1}],
    }


# ---- feature flags ----


def test_feature_flag_created_as_boolean_system_setting() -> None:
    lms = FakeLmsApi()
    lms.add("POST", "/settings", {"_id": "f1"}, status=201)
    flags = _service(FeatureFlagService, lms)
    asyncio.run(flags.create({"key": "dark_mode", "value": True}))
    assert lms.calls[0].body == {
        "key": "dark_mode",
        "value": True,
        "type": "system",
        "valueType": "boolean",
        "scope": "global",
        "description": "",
    }


def test_feature_flag_toggle_patches_value() -> None:
    lms = FakeLmsApi()
    lms.add("PATCH", "/settings/f1", {"_id": "f1", "value": False})
    asyncio.run(_service(FeatureFlagService, lms).toggle("f1", False))
    assert lms.calls[0].body == {"value": False}


# ---- students & study plans ----


def test_student_activity_passes_limit() -> None:
    lms = FakeLmsApi()
    lms.add("GET", "/student-progress/stu-1/activity", [])
    asyncio.run(_service(StudentService, lms).activity("stu-1", limit=5))
    assert lms.calls[0].params == {"limit": "5"}


def test_study_plan_create_stamps_student() -> None:
    lms = FakeLmsApi()
    lms.add("POST", "/study-plans/schedules/stu-1", {"_id": "plan-1"}, status=201)
    asyncio.run(_service(StudyPlanService, lms).create("stu-1", {"weeklySchedule": []}))
    assert lms.calls[0].body == {"weeklySchedule": [], "studentId": "stu-1"}
