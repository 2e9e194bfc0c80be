"""Lecture viewing: details, transcript, resources, navigation, notes.

Progress writes (``update_progress`` / ``mark_complete``) bypass the
cache entirely; they are the sink of the progress synchronizer.
"""

from __future__ import annotations

import logging
from typing import Any

from portal.clients.errors import NotFoundError
from portal.services.resources import CachedService

logger = logging.getLogger(__name__)


def _order_key(lecture: dict) -> float:
    order = lecture.get("order")
    return order if isinstance(order, (int, float)) else float("inf")


class LectureService(CachedService):
    resource = "lectures"

    async def details(self, lecture_id: str, student_id: str | None = None) -> dict:
        # Carries the student's progress, so never served from cache
        return await self._api.get(
            f"/lectures/{lecture_id}/details", params={"studentId": student_id}
        )

    async def transcript(self, lecture_id: str) -> list[dict]:
        async def load() -> list[dict]:
            try:
                return await self._api.get(f"/lectures/{lecture_id}/transcript") or []
            except NotFoundError:
                return []

        return await self._read(f"{lecture_id}:transcript", load)

    async def resources(self, lecture_id: str) -> list[dict]:
        async def load() -> list[dict]:
            try:
                return await self._api.get(f"/lectures/{lecture_id}/resources") or []
            except NotFoundError:
                return []

        return await self._read(f"{lecture_id}:resources", load)

    async def by_chapter(self, chapter_id: str, student_id: str | None = None) -> list[dict]:
        lectures = await self._api.get(
            f"/lectures/byChapter/{chapter_id}", params={"studentId": student_id}
        )
        # Lectures without an order sink to the end, keeping their relative order
        return sorted(lectures or [], key=_order_key)

    async def update_progress(self, lecture_id: str, student_id: str, payload: dict) -> Any:
        return await self._api.post(
            f"/lectures/{lecture_id}/progress", json={"studentId": student_id, **payload}
        )

    async def mark_complete(self, lecture_id: str, student_id: str) -> Any:
        return await self._api.post(
            f"/lectures/{lecture_id}/complete", json={"studentId": student_id}
        )


class LectureProgressSink:
    """Binds a LectureService to one student for the progress synchronizer."""

    def __init__(self, lectures: LectureService, student_id: str) -> None:
        self._lectures = lectures
        self._student_id = student_id

    async def update_progress(self, lecture_id: str, payload: dict) -> Any:
        return await self._lectures.update_progress(lecture_id, self._student_id, payload)

    async def mark_complete(self, lecture_id: str) -> Any:
        return await self._lectures.mark_complete(lecture_id, self._student_id)


class NoteService(CachedService):
    resource = "notes"

    async def for_lecture(self, lecture_id: str) -> list[dict]:
        async def load() -> list[dict]:
            body = await self._api.get(f"/notes/lecture/{lecture_id}")
            # The API has answered both with a bare list and with {"notes": [...]}
            if isinstance(body, list):
                return body
            if isinstance(body, dict) and isinstance(body.get("notes"), list):
                return body["notes"]
            return []

        return await self._read(f"lecture:{lecture_id}", load)

    async def create(self, lecture_id: str, data: dict) -> dict:
        note = await self._api.post(f"/notes/lectures/{lecture_id}", json=data)
        await self._invalidate()
        return note

    async def update(self, note_id: str, data: dict) -> dict:
        note = await self._api.put(f"/notes/{note_id}", json=data)
        await self._invalidate()
        return note

    async def delete(self, note_id: str) -> Any:
        result = await self._api.delete(f"/notes/{note_id}")
        await self._invalidate()
        return result
