"""Aptitude test flow for students.

Students who have not passed the aptitude test land here after sign-in.
Submitting a test re-evaluates their aptitude status and tells the
browser where to go next.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from portal.api.dependencies import (
    get_assessments,
    get_auth_service,
    get_context,
    require_user_type,
)
from portal.clients.errors import ApiError, SessionExpiredError
from portal.context import PortalContext
from portal.models.session import AptitudeTestStatus, Session
from portal.services.assessments import AssessmentService
from portal.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/aptitude-test", tags=["aptitude-test"])

Student = Annotated[Session, Depends(require_user_type("student"))]
Assessments = Annotated[AssessmentService, Depends(get_assessments)]


class QuestionResponse(BaseModel):
    questionId: str
    selectedAnswer: str
    isCorrect: bool
    score: float = Field(ge=0)
    timeSpentSeconds: int = Field(default=0, ge=0)


class AssessmentSubmissionIn(BaseModel):
    classId: str
    subjectId: str | None = None
    totalScore: float = Field(ge=0)
    maxPossibleScore: float = Field(gt=0)
    timeSpentMinutes: int = Field(default=0, ge=0)
    questionResponses: list[QuestionResponse] = []
    status: Literal["completed"] = "completed"
    passingScore: float | None = Field(default=None, ge=0, le=100)
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _score_within_max(self) -> AssessmentSubmissionIn:
        if self.totalScore > self.maxPossibleScore:
            raise ValueError("totalScore cannot exceed maxPossibleScore")
        return self


@router.get("")
async def pending_tests(session: Student, assessments: Assessments) -> dict:
    pending = await assessments.pending(session.user.id)
    status_ = session.user.aptitude_test_status or AptitudeTestStatus()
    return {
        **pending,
        "aptitudeTestStatus": {"attempted": status_.attempted, "passed": status_.passed},
    }


@router.get("/results")
async def my_results(session: Student, assessments: Assessments) -> list[dict]:
    return await assessments.results(session.user.id, type="aptitude")


@router.get("/{assessment_id}")
async def get_test(assessment_id: str, _session: Student, assessments: Assessments) -> dict:
    return await assessments.get(assessment_id)


@router.post("/{assessment_id}/submit")
async def submit_test(
    assessment_id: str,
    payload: AssessmentSubmissionIn,
    session: Student,
    assessments: Assessments,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    context: Annotated[PortalContext, Depends(get_context)],
) -> dict:
    outcome = await assessments.submit(
        session.user.id, assessment_id, payload.model_dump(exclude_none=True)
    )
    # Results and progress shown on the dashboards just changed
    await context.cache.delete_pattern("students:*")

    try:
        status_ = await auth.check_aptitude_test_status(session)
    except SessionExpiredError:
        raise
    except ApiError:
        logger.warning(
            "Aptitude status refresh failed  user=%s", session.user.id, exc_info=True
        )
        status_ = AptitudeTestStatus(
            attempted=True, passed=outcome["passed"], test_id=assessment_id
        )
        await auth.refresh_session(session, status_)

    return {
        **outcome,
        "aptitudeTestStatus": {"attempted": status_.attempted, "passed": status_.passed},
        "next": "/student/dashboard" if status_.passed else "/aptitude-test",
    }
