"""Aptitude tests and assessment results.

Two pass marks exist, each applied where the LMS applies it:

- scoring a fresh submission uses the assessment's ``passingScore``,
  falling back to 60
- evaluating stored results (the aptitude status shown at login) uses
  each result's ``passingScore``, falling back to 70
"""

from __future__ import annotations

import logging
from typing import Any

from portal.clients.errors import ApiError
from portal.clients.lms_api import LmsApiClient
from portal.models.session import AptitudeTestStatus
from portal.services.enrollments import EnrollmentService

logger = logging.getLogger(__name__)

SUBMISSION_PASSING_SCORE = 60.0
RESULT_PASSING_SCORE = 70.0


def evaluate_aptitude_status(results: Any) -> AptitudeTestStatus:
    """Summarize a student's aptitude results (newest first, as the API returns them)."""
    if not isinstance(results, list):
        logger.warning("Expected a list of assessment results, got %s", type(results).__name__)
        return AptitudeTestStatus()

    completed = [r for r in results if isinstance(r, dict) and r.get("status") == "completed"]
    if not completed:
        return AptitudeTestStatus()

    def _passed(result: dict) -> bool:
        score = result.get("percentageScore")
        passing = result.get("passingScore")
        score = score if isinstance(score, (int, float)) else 0
        passing = passing if isinstance(passing, (int, float)) else RESULT_PASSING_SCORE
        return score >= passing

    latest = completed[0]
    assessment = latest.get("assessmentId")
    test_id = assessment.get("_id") if isinstance(assessment, dict) else assessment

    return AptitudeTestStatus(
        attempted=True,
        passed=any(_passed(r) for r in completed),
        test_id=str(test_id) if test_id else None,
        last_attempt_date=latest.get("createdAt"),
    )


def score_submission(
    total_score: float,
    max_possible_score: float,
    passing_score: float | None = None,
) -> tuple[float, bool]:
    """Return (percentage, passed) for one submission."""
    if max_possible_score <= 0:
        raise ValueError("max_possible_score must be > 0")
    percentage = total_score / max_possible_score * 100
    threshold = passing_score if passing_score is not None else SUBMISSION_PASSING_SCORE
    return percentage, percentage >= threshold


def _format_enrollment_test(test: dict) -> dict:
    subject_name = test.get("subjectName")
    return {
        "id": test.get("assessmentId"),
        "name": f"Aptitude Test: {subject_name}" if subject_name else "Aptitude Test",
        "type": "aptitude",
        "subjectId": test.get("subjectId"),
        "subjectName": subject_name,
        "dueDate": None,
    }


class AssessmentService:
    def __init__(self, api: LmsApiClient, enrollments: EnrollmentService) -> None:
        self._api = api
        self._enrollments = enrollments

    async def _assessment_pending(self, student_id: str) -> list[dict]:
        body = await self._api.get(f"/assessments/pending/{student_id}")
        if isinstance(body, dict):
            return body.get("pendingTests") or []
        return body or []

    async def pending(self, student_id: str) -> dict:
        """Pending aptitude tests from enrollment assignments and from the
        assessment service, deduplicated by id.

        Either source may fail on its own; only when both fail is the
        error raised.
        """
        tests: list[dict] = []
        seen: set[str] = set()
        failures: list[ApiError] = []

        try:
            assigned = [
                _format_enrollment_test(t)
                for t in await self._enrollments.pending_tests(student_id)
            ]
        except ApiError as e:
            logger.info("Enrollment pending-tests unavailable  student=%s: %s", student_id, e)
            failures.append(e)
            assigned = []

        try:
            listed = await self._assessment_pending(student_id)
        except ApiError as e:
            logger.info("Assessment pending list unavailable  student=%s: %s", student_id, e)
            failures.append(e)
            listed = []

        if len(failures) == 2:
            raise failures[-1]

        for test in [*assigned, *listed]:
            test_id = test.get("id") or test.get("_id")
            if test_id in seen:
                continue
            if test_id:
                seen.add(test_id)
            tests.append(test)

        return {"hasPendingTest": bool(tests), "pendingTests": tests}

    async def get(self, assessment_id: str) -> dict:
        return await self._api.get(f"/assessments/{assessment_id}")

    async def results(self, student_id: str, type: str | None = None) -> list[dict]:
        return await self._api.get(
            f"/assessment-results/student/{student_id}", params={"type": type}
        )

    async def submit(self, student_id: str, assessment_id: str, submission: dict) -> dict:
        """Post a result, score it, and record pass/fail on the enrollment."""
        payload = {k: v for k, v in submission.items() if k != "passingScore"}
        payload["assessmentId"] = assessment_id
        result = await self._api.post(f"/assessment-results/{student_id}", json=payload)

        assessment = result.get("assessment") if isinstance(result, dict) else None
        passing_score = (
            (assessment or {}).get("passingScore") or submission.get("passingScore")
        )
        percentage, passed = score_submission(
            submission["totalScore"], submission["maxPossibleScore"], passing_score
        )

        result_id = result.get("_id") if isinstance(result, dict) else None
        if result_id:
            try:
                await self._enrollments.update_test_status(student_id, result_id, passed)
            except ApiError:
                # The result itself is stored; enrollment catches up on the
                # next status evaluation.
                logger.warning(
                    "Enrollment test-status update failed  student=%s result=%s",
                    student_id,
                    result_id,
                    exc_info=True,
                )

        logger.info(
            "Assessment submitted  student=%s assessment=%s percentage=%.1f passed=%s",
            student_id,
            assessment_id,
            percentage,
            passed,
        )
        return {"result": result, "percentageScore": percentage, "passed": passed}
