from __future__ import annotations

from typing import Any

from portal.services.resources import CachedService

_BASE = "/study-plans"


class StudyPlanService(CachedService):
    """Study plan schedules, study sessions and study-time analytics.

    Every path is keyed by student, so this does not fit ResourceService.
    """

    resource = "study_plans"

    async def list(self) -> list[dict]:
        return await self._read("all", lambda: self._api.get(f"{_BASE}/schedules"))

    async def for_student(self, student_id: str) -> list[dict]:
        return await self._read(
            f"student:{student_id}",
            lambda: self._api.get(f"{_BASE}/schedules/{student_id}"),
        )

    async def active(self, student_id: str) -> dict | None:
        return await self._read(
            f"active:{student_id}",
            lambda: self._api.get(f"{_BASE}/schedules/{student_id}/active"),
        )

    async def create(self, student_id: str, data: dict) -> dict:
        created = await self._api.post(
            f"{_BASE}/schedules/{student_id}", json={**data, "studentId": student_id}
        )
        await self._invalidate()
        return created

    async def update(self, student_id: str, plan_id: str, data: dict) -> dict:
        updated = await self._api.put(f"{_BASE}/schedules/{student_id}/{plan_id}", json=data)
        await self._invalidate()
        return updated

    async def delete(self, student_id: str, plan_id: str) -> Any:
        result = await self._api.delete(f"{_BASE}/schedules/{student_id}/{plan_id}")
        await self._invalidate()
        return result

    # -- study sessions ----------------------------------------------------

    async def start_session(
        self, student_id: str, subject_id: str, schedule_id: str | None = None
    ) -> dict:
        result = await self._api.post(
            f"/study-sessions/{student_id}/start",
            json={
                "studentId": student_id,
                "subjectId": subject_id,
                "scheduleId": schedule_id,
            },
        )
        await self._invalidate()
        return result

    async def end_session(self, student_id: str, session_id: str, data: dict) -> dict:
        result = await self._api.put(
            f"/study-sessions/{student_id}/end/{session_id}", json=data
        )
        await self._invalidate()
        return result

    async def sessions(
        self,
        student_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        return await self._api.get(
            f"/study-sessions/{student_id}/list",
            params={"startDate": start_date, "endDate": end_date},
        )

    async def analytics(self, student_id: str, period: str = "week") -> dict:
        return await self._read(
            f"analytics:{student_id}:{period}",
            lambda: self._api.get(
                f"/study-sessions/{student_id}/analytics", params={"period": period}
            ),
        )

    async def weekly_progress(self, student_id: str, year: int, week: int) -> dict:
        return await self._read(
            f"weekly:{student_id}:{year}:{week}",
            lambda: self._api.get(f"/study-progress/{student_id}/weekly/{year}/{week}"),
        )

    async def summary(self, student_id: str) -> dict:
        return await self._read(
            f"summary:{student_id}",
            lambda: self._api.get(f"/study-progress/{student_id}/summary"),
        )
