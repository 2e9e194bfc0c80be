from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from portal.api.dependencies import cached_service, require_user_type
from portal.services.resources import ChapterService

router = APIRouter(
    prefix="/admin/chapters",
    tags=["chapters"],
    dependencies=[Depends(require_user_type("admin"))],
)

Chapters = Annotated[ChapterService, Depends(cached_service(ChapterService))]


class ChapterIn(BaseModel):
    displayName: str = Field(min_length=3)
    name: str = Field(min_length=3, pattern=r"^[a-z0-9-]+$")
    classId: str
    subjectId: str
    order: int = Field(ge=1)
    description: str = Field(min_length=5)
    duration: int = Field(ge=1)  # minutes
    isLocked: bool = False
    isActive: bool = True
    imageUrl: str | None = None


class ChapterPosition(BaseModel):
    id: str
    order: int = Field(ge=1)


class ChapterReorderIn(BaseModel):
    subjectId: str
    chapters: list[ChapterPosition] = Field(min_length=1)


class ChapterOrderIn(BaseModel):
    order: int = Field(ge=1)


@router.get("")
async def list_chapters(
    chapters: Chapters,
    search: str | None = None,
    subject_id: Annotated[str | None, Query(alias="subjectId")] = None,
) -> list[dict]:
    if subject_id:
        return await chapters.by_subject(subject_id)
    return await chapters.search(search)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chapter(payload: ChapterIn, chapters: Chapters) -> dict:
    return await chapters.create(payload.model_dump(exclude_none=True))


@router.post("/reorder")
async def reorder_chapters(payload: ChapterReorderIn, chapters: Chapters) -> Any:
    return await chapters.reorder(
        payload.subjectId, [c.model_dump() for c in payload.chapters]
    )


@router.get("/{chapter_id}")
async def get_chapter(chapter_id: str, chapters: Chapters) -> dict:
    return await chapters.get(chapter_id)


@router.put("/{chapter_id}")
async def update_chapter(chapter_id: str, payload: ChapterIn, chapters: Chapters) -> dict:
    return await chapters.update(chapter_id, payload.model_dump(exclude_none=True))


@router.delete("/{chapter_id}")
async def delete_chapter(chapter_id: str, chapters: Chapters) -> Any:
    return await chapters.delete(chapter_id)


@router.put("/{chapter_id}/order")
async def set_chapter_order(chapter_id: str, payload: ChapterOrderIn, chapters: Chapters) -> dict:
    return await chapters.update_order(chapter_id, payload.order)


@router.get("/{chapter_id}/dependencies")
async def chapter_dependencies(chapter_id: str, chapters: Chapters) -> dict:
    return await chapters.dependencies(chapter_id)


@router.post("/{chapter_id}/lectures/{lecture_id}", status_code=status.HTTP_201_CREATED)
async def add_chapter_lecture(chapter_id: str, lecture_id: str, chapters: Chapters) -> Any:
    return await chapters.add_lecture(chapter_id, lecture_id)


@router.delete("/{chapter_id}/lectures/{lecture_id}")
async def remove_chapter_lecture(chapter_id: str, lecture_id: str, chapters: Chapters) -> Any:
    return await chapters.remove_lecture(chapter_id, lecture_id)
