"""Student subject, chapter and lecture pages.

Opening a lecture view starts a progress synchronizer for it; the
browser then streams observations to ``POST .../progress`` and tears
the view down with ``POST .../close``.  Observations are answered
immediately with the merged state (202); the LMS API sees them only
after the debounce window.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from portal.api.dependencies import cached_service, get_context, require_user_type
from portal.api.sections import load_sections
from portal.context import PortalContext
from portal.models.progress import ProgressUpdate
from portal.models.session import Session
from portal.services.lectures import LectureProgressSink, LectureService, NoteService
from portal.services.progress_sync import LectureProgressSynchronizer
from portal.services.resources import SubjectService
from portal.services.students import StudentService

router = APIRouter(prefix="/student", tags=["lectures"])

Student = Annotated[Session, Depends(require_user_type("student"))]
Lectures = Annotated[LectureService, Depends(cached_service(LectureService))]
Notes = Annotated[NoteService, Depends(cached_service(NoteService))]
Context = Annotated[PortalContext, Depends(get_context)]


class ProgressEventIn(BaseModel):
    progress: float | None = Field(default=None, ge=0, le=100)
    currentTime: float | None = Field(default=None, ge=0)
    currentPage: int | None = Field(default=None, ge=0)
    currentSlide: int | None = Field(default=None, ge=0)
    isCompleted: bool | None = None

    def to_update(self) -> ProgressUpdate:
        return ProgressUpdate(
            progress=self.progress,
            current_time=self.currentTime,
            current_page=self.currentPage,
            current_slide=self.currentSlide,
            is_completed=self.isCompleted,
        )


class NoteIn(BaseModel):
    content: str = Field(min_length=1)
    timestamp: float | None = Field(default=None, ge=0)


def _initial_progress(details: Any) -> float:
    student_progress = details.get("studentProgress") if isinstance(details, dict) else None
    value = student_progress.get("progress") if isinstance(student_progress, dict) else None
    if not isinstance(value, (int, float)):
        return 0.0
    # Seeds outside [0, 100] would poison the monotonic merge
    return float(min(max(value, 0), 100))


def _progress_view(synchronizer: LectureProgressSynchronizer) -> dict:
    return {
        **synchronizer.state.to_dict(),
        "lastSynced": synchronizer.last_synced.to_dict(),
        "syncPending": synchronizer.sync_pending,
        "hasUnsyncedChanges": synchronizer.has_unsynced_changes,
    }


def _open_view(
    context: PortalContext, session: Session, lecture_id: str
) -> LectureProgressSynchronizer:
    synchronizer = context.registry.get(session.session_id, lecture_id)
    if synchronizer is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Lecture view is not open",
        )
    return synchronizer


# --- subject & chapter navigation -----------------------------------------


@router.get("/subjects/{subject_id}")
async def subject_page(
    subject_id: str,
    session: Student,
    subjects: Annotated[SubjectService, Depends(cached_service(SubjectService))],
    students: Annotated[StudentService, Depends(cached_service(StudentService))],
) -> dict:
    subject = await subjects.get(subject_id)
    sections = await load_sections(
        {
            "chapters": subjects.chapters(subject_id),
            "progress": students.subject_progress(session.user.id, subject_id),
        }
    )
    return {"subject": subject, **sections}


@router.get("/chapters/{chapter_id}/lectures")
async def chapter_lectures(chapter_id: str, session: Student, lectures: Lectures) -> list[dict]:
    return await lectures.by_chapter(chapter_id, session.user.id)


# --- lecture view -----------------------------------------------------------


@router.get("/lectures/{lecture_id}")
async def lecture_page(
    lecture_id: str,
    session: Student,
    lectures: Lectures,
    notes: Notes,
    context: Context,
) -> dict:
    details = await lectures.details(lecture_id, session.user.id)
    sections = await load_sections(
        {
            "transcript": lectures.transcript(lecture_id),
            "resources": lectures.resources(lecture_id),
            "notes": notes.for_lecture(lecture_id),
        }
    )
    synchronizer = context.registry.open(
        session.session_id,
        lecture_id,
        LectureProgressSink(lectures, session.user.id),
        initial_progress=_initial_progress(details),
    )
    return {"lecture": details, **sections, "progress": _progress_view(synchronizer)}


@router.post("/lectures/{lecture_id}/progress", status_code=status.HTTP_202_ACCEPTED)
async def observe_progress(
    lecture_id: str, payload: ProgressEventIn, session: Student, context: Context
) -> dict:
    synchronizer = _open_view(context, session, lecture_id)
    synchronizer.observe(payload.to_update())
    return _progress_view(synchronizer)


@router.get("/lectures/{lecture_id}/progress")
async def lecture_progress(lecture_id: str, session: Student, context: Context) -> dict:
    return _progress_view(_open_view(context, session, lecture_id))


@router.post("/lectures/{lecture_id}/close", status_code=status.HTTP_202_ACCEPTED)
async def close_lecture(lecture_id: str, session: Student, context: Context) -> dict:
    task = context.registry.close(session.session_id, lecture_id)
    return {"closed": True, "final_sync": task is not None}


# --- notes -----------------------------------------------------------------


@router.get("/lectures/{lecture_id}/notes")
async def lecture_notes(lecture_id: str, _session: Student, notes: Notes) -> list[dict]:
    return await notes.for_lecture(lecture_id)


@router.post("/lectures/{lecture_id}/notes", status_code=status.HTTP_201_CREATED)
async def create_note(lecture_id: str, payload: NoteIn, _session: Student, notes: Notes) -> dict:
    return await notes.create(lecture_id, payload.model_dump(exclude_none=True))


@router.put("/notes/{note_id}")
async def update_note(note_id: str, payload: NoteIn, _session: Student, notes: Notes) -> dict:
    return await notes.update(note_id, payload.model_dump(exclude_none=True))


@router.delete("/notes/{note_id}")
async def delete_note(note_id: str, _session: Student, notes: Notes) -> Any:
    return await notes.delete(note_id)
