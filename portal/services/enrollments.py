from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from portal.clients.lms_api import LmsApiClient

DEFAULT_DENIAL_REASON = "Access requirements not met"


@dataclass(frozen=True, slots=True)
class SubjectAccess:
    has_access: bool
    reason: str | None = None
    requirements: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_api(data: Any) -> SubjectAccess:
        """Parse the access-check body.  Raises ValueError when malformed."""
        if not isinstance(data, dict) or not isinstance(data.get("hasAccess"), bool):
            raise ValueError(f"malformed access-check response: {data!r}")
        has_access = data["hasAccess"]
        reason = data.get("reason")
        requirements = data.get("requirements") or {}
        if not has_access and not reason:
            reason = DEFAULT_DENIAL_REASON
        return SubjectAccess(has_access=has_access, reason=reason, requirements=requirements)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasAccess": self.has_access,
            "reason": self.reason,
            "requirements": self.requirements,
        }


class EnrollmentService:
    """Enrollment and eligibility lookups.

    Nothing here is cached: these answers gate access, and a student who
    just passed a test or paid must be let in on the next request.
    """

    def __init__(self, api: LmsApiClient) -> None:
        self._api = api

    async def check_access(self, student_id: str, subject_id: str) -> SubjectAccess:
        data = await self._api.get(f"/enrollment/access/{student_id}/{subject_id}")
        return SubjectAccess.from_api(data)

    async def all_required_tests_passed(self, student_id: str) -> bool:
        data = await self._api.get(
            f"/enrollment/status/all-required-tests-passed/{student_id}"
        )
        if not isinstance(data, dict) or "allTestsPassed" not in data:
            raise ValueError(f"malformed tests-passed response: {data!r}")
        return bool(data["allTestsPassed"])

    async def for_student(self, student_id: str, status: str | None = None) -> list[dict]:
        return await self._api.get(
            f"/enrollment/student/{student_id}", params={"status": status}
        )

    async def pending_tests(self, student_id: str) -> list[dict]:
        return await self._api.get(f"/enrollment/pending-tests/{student_id}") or []

    async def assign_tests(self, student_id: str) -> Any:
        return await self._api.post(f"/enrollment/assign-tests/{student_id}")

    async def update_test_status(self, student_id: str, result_id: str, passed: bool) -> Any:
        return await self._api.put(
            f"/enrollment/update-test-status/{student_id}/{result_id}",
            json={"passed": passed},
        )
