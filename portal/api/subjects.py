from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from portal.api.dependencies import cached_service, require_user_type
from portal.services.resources import SubjectService

router = APIRouter(
    prefix="/admin/subjects",
    tags=["subjects"],
    dependencies=[Depends(require_user_type("admin"))],
)

Subjects = Annotated[SubjectService, Depends(cached_service(SubjectService))]


class SubjectIn(BaseModel):
    name: str = Field(min_length=2)
    displayName: str = Field(min_length=2)
    classId: str
    isActive: bool = True
    currentVersion: str | None = None
    imageUrl: str | None = None


class SubjectChapterIn(BaseModel):
    chapterId: str


@router.get("")
async def list_subjects(
    subjects: Subjects, class_id: Annotated[str | None, Query(alias="classId")] = None
) -> list[dict]:
    if class_id:
        return await subjects.by_class(class_id)
    return await subjects.list()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_subject(payload: SubjectIn, subjects: Subjects) -> dict:
    return await subjects.create(payload.model_dump(exclude_none=True))


@router.get("/{subject_id}")
async def get_subject(subject_id: str, subjects: Subjects) -> dict:
    return await subjects.get(subject_id)


@router.put("/{subject_id}")
async def update_subject(subject_id: str, payload: SubjectIn, subjects: Subjects) -> dict:
    return await subjects.update(subject_id, payload.model_dump(exclude_none=True))


@router.delete("/{subject_id}")
async def delete_subject(subject_id: str, subjects: Subjects) -> Any:
    return await subjects.delete(subject_id)


@router.get("/{subject_id}/chapters")
async def subject_chapters(subject_id: str, subjects: Subjects) -> list[dict]:
    return await subjects.chapters(subject_id)


@router.post("/{subject_id}/chapters", status_code=status.HTTP_201_CREATED)
async def add_subject_chapter(
    subject_id: str, payload: SubjectChapterIn, subjects: Subjects
) -> Any:
    return await subjects.add_chapter(subject_id, payload.chapterId)


@router.delete("/{subject_id}/chapters/{chapter_id}")
async def remove_subject_chapter(subject_id: str, chapter_id: str, subjects: Subjects) -> Any:
    return await subjects.remove_chapter(subject_id, chapter_id)
