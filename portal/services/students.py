from __future__ import annotations

from portal.services.resources import CachedService


class StudentService(CachedService):
    """Student progress and activity, as seen by students, parents and admins."""

    resource = "students"

    async def children(self) -> list[dict]:
        # The API resolves "my children" from the bearer token
        return await self._read("children", lambda: self._api.get("/users/children"))

    async def students(self) -> list[dict]:
        return await self._read("all", lambda: self._api.get("/users/type/student"))

    async def overview(self, student_id: str) -> dict:
        return await self._read(
            f"{student_id}:overview",
            lambda: self._api.get(f"/student-progress/{student_id}/overview"),
        )

    async def subject_progress(self, student_id: str, subject_id: str) -> dict:
        return await self._read(
            f"{student_id}:subject:{subject_id}",
            lambda: self._api.get(f"/student-progress/{student_id}/subject/{subject_id}"),
        )

    async def statistics(self, student_id: str) -> dict:
        return await self._read(
            f"{student_id}:statistics",
            lambda: self._api.get(f"/student-progress/{student_id}/statistics"),
        )

    async def activity(self, student_id: str, limit: int = 5) -> list[dict]:
        return await self._read(
            f"{student_id}:activity:{limit}",
            lambda: self._api.get(
                f"/student-progress/{student_id}/activity", params={"limit": limit}
            ),
        )

    async def study_analytics(self, student_id: str) -> dict:
        return await self._read(
            f"{student_id}:analytics",
            lambda: self._api.get(f"/study-sessions/{student_id}/analytics"),
        )

    async def assessment_results(self, student_id: str) -> list[dict]:
        return await self._read(
            f"{student_id}:results",
            lambda: self._api.get(f"/assessment-results/student/{student_id}"),
        )
