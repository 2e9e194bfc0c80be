from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from portal.api.dependencies import cached_service, require_user_type
from portal.services.resources import ClassService

router = APIRouter(
    prefix="/admin/classes",
    tags=["classes"],
    dependencies=[Depends(require_user_type("admin"))],
)

Classes = Annotated[ClassService, Depends(cached_service(ClassService))]

_SYSTEM_NAME = r"^[a-z0-9-]+$"


class AptitudeCriteria(BaseModel):
    required: bool = True
    passingPercentage: float = Field(default=60, ge=0, le=100)
    attemptsAllowed: int = Field(default=1, ge=1)


class ChapterTestCriteria(BaseModel):
    passingPercentage: float = Field(default=60, ge=0, le=100)
    attemptsAllowed: int = Field(default=1, ge=1)


class AssessmentCriteria(BaseModel):
    aptitudeTest: AptitudeCriteria = AptitudeCriteria()
    chapterTests: ChapterTestCriteria = ChapterTestCriteria()


class ClassIn(BaseModel):
    name: str = Field(min_length=2, pattern=_SYSTEM_NAME)
    displayName: str = Field(min_length=2)
    description: str | None = None
    isActive: bool = True
    assessmentCriteria: AssessmentCriteria | None = None


class ClassSubjectIn(BaseModel):
    subjectId: str


@router.get("")
async def list_classes(classes: Classes) -> list[dict]:
    return await classes.list()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_class(payload: ClassIn, classes: Classes) -> dict:
    return await classes.create(payload.model_dump(exclude_none=True))


@router.get("/{class_id}")
async def get_class(class_id: str, classes: Classes) -> dict:
    return await classes.get(class_id)


@router.put("/{class_id}")
async def update_class(class_id: str, payload: ClassIn, classes: Classes) -> dict:
    return await classes.update(class_id, payload.model_dump(exclude_none=True))


@router.delete("/{class_id}")
async def delete_class(class_id: str, classes: Classes) -> Any:
    return await classes.delete(class_id)


@router.get("/{class_id}/subjects")
async def class_subjects(class_id: str, classes: Classes) -> list[dict]:
    return await classes.subjects(class_id)


@router.post("/{class_id}/subjects", status_code=status.HTTP_201_CREATED)
async def add_class_subject(class_id: str, payload: ClassSubjectIn, classes: Classes) -> Any:
    return await classes.add_subject(class_id, payload.subjectId)


@router.delete("/{class_id}/subjects/{subject_id}")
async def remove_class_subject(class_id: str, subject_id: str, classes: Classes) -> Any:
    return await classes.remove_subject(class_id, subject_id)
