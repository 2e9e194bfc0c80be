from __future__ import annotations

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field, model_validator

from portal.api.dependencies import cached_service, require_user_type
from portal.services.study_plans import StudyPlanService

router = APIRouter(
    prefix="/admin/study-plans",
    tags=["study-plans"],
    dependencies=[Depends(require_user_type("admin"))],
)

Plans = Annotated[StudyPlanService, Depends(cached_service(StudyPlanService))]

_HHMM = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


class TimeSlot(BaseModel):
    id: str | None = None
    dayOfWeek: int = Field(ge=0, le=6)
    startTime: str = Field(pattern=_HHMM)
    endTime: str = Field(pattern=_HHMM)
    subjectId: str = Field(min_length=1)
    isActive: bool = True

    @model_validator(mode="after")
    def _end_after_start(self) -> TimeSlot:
        if _minutes(self.endTime) <= _minutes(self.startTime):
            raise ValueError("End time must be after start time")
        return self


class Benchmark(BaseModel):
    id: str | None = None
    type: Literal["daily", "weekly", "monthly"]
    target: float = Field(gt=0)
    metric: Literal["hours", "topics", "assessments"]
    isActive: bool = True
    guardianId: str | None = None
    note: str | None = None


class StudyPlanIn(BaseModel):
    weeklySchedule: list[TimeSlot] = Field(min_length=1)
    benchmarks: list[Benchmark] = []
    isActive: bool = True
    effectiveFrom: str = Field(min_length=1)
    effectiveUntil: str | None = None
    preferences: dict[str, Any] | None = None


class StudySessionStartIn(BaseModel):
    subjectId: str = Field(min_length=1)
    scheduleId: str | None = None


class StudySessionEndIn(BaseModel):
    notes: str | None = None
    topicsCovered: list[str] = []


@router.get("")
async def list_plans(plans: Plans) -> list[dict]:
    return await plans.list()


@router.get("/{student_id}")
async def student_plans(student_id: str, plans: Plans) -> list[dict]:
    return await plans.for_student(student_id)


@router.post("/{student_id}", status_code=status.HTTP_201_CREATED)
async def create_plan(student_id: str, payload: StudyPlanIn, plans: Plans) -> dict:
    return await plans.create(student_id, payload.model_dump(exclude_none=True))


@router.get("/{student_id}/active")
async def active_plan(student_id: str, plans: Plans) -> dict | None:
    return await plans.active(student_id)


@router.get("/{student_id}/analytics")
async def plan_analytics(
    student_id: str,
    plans: Plans,
    period: Literal["day", "week", "month", "year"] = "week",
) -> dict:
    return await plans.analytics(student_id, period)


@router.get("/{student_id}/summary")
async def plan_summary(student_id: str, plans: Plans) -> dict:
    return await plans.summary(student_id)


@router.get("/{student_id}/weekly/{year}/{week}")
async def weekly_progress(
    student_id: str,
    year: int,
    week: Annotated[int, Path(ge=1, le=53)],
    plans: Plans,
) -> dict:
    return await plans.weekly_progress(student_id, year, week)


@router.get("/{student_id}/sessions")
async def study_sessions(
    student_id: str,
    plans: Plans,
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
) -> list[dict]:
    return await plans.sessions(student_id, start_date, end_date)


@router.post("/{student_id}/sessions", status_code=status.HTTP_201_CREATED)
async def start_study_session(
    student_id: str, payload: StudySessionStartIn, plans: Plans
) -> dict:
    return await plans.start_session(student_id, payload.subjectId, payload.scheduleId)


@router.put("/{student_id}/sessions/{session_id}/end")
async def end_study_session(
    student_id: str, session_id: str, payload: StudySessionEndIn, plans: Plans
) -> dict:
    return await plans.end_session(student_id, session_id, payload.model_dump(exclude_none=True))


@router.put("/{student_id}/{plan_id}")
async def update_plan(
    student_id: str, plan_id: str, payload: StudyPlanIn, plans: Plans
) -> dict:
    return await plans.update(student_id, plan_id, payload.model_dump(exclude_none=True))


@router.delete("/{student_id}/{plan_id}")
async def delete_plan(student_id: str, plan_id: str, plans: Plans) -> Any:
    return await plans.delete(student_id, plan_id)
