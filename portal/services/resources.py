"""Cached CRUD services for the admin management screens.

Each service wraps one LMS collection.  Reads go through the
read-through cache; writes go straight to the API and then invalidate
every cached key of the resources they touch.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, ClassVar
from urllib.parse import urlencode

from portal.clients.lms_api import LmsApiClient
from portal.services.cache import CacheService, read_through


class CachedService:
    """Base for services that read through the cache.

    Subclasses set ``resource`` (the cache namespace).
    """

    resource: ClassVar[str]

    def __init__(
        self,
        api: LmsApiClient,
        cache: CacheService,
        *,
        user_id: str,
        ttl_seconds: int,
    ) -> None:
        self._api = api
        self._cache = cache
        self._user_id = user_id
        self._ttl = ttl_seconds

    def _key(self, suffix: str) -> str:
        return f"{self.resource}:{self._user_id}:{suffix}"

    async def _read(self, suffix: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        return await read_through(self._cache, self._key(suffix), self._ttl, loader)

    async def _invalidate(self, *resources: str) -> None:
        for resource in resources or (self.resource,):
            await self._cache.delete_pattern(f"{resource}:*")


def _query_suffix(name: str, params: dict[str, Any] | None) -> str:
    if not params:
        return name
    clean = sorted((k, v) for k, v in params.items() if v is not None)
    return f"{name}?{urlencode(clean)}" if clean else name


class ResourceService(CachedService):
    """list/get/create/update/delete over ``/{collection}``."""

    collection: ClassVar[str]
    # Other cache namespaces that embed this resource and go stale with it
    related: ClassVar[tuple[str, ...]] = ()

    async def list(self, params: dict[str, Any] | None = None) -> list[dict]:
        return await self._read(
            _query_suffix("list", params),
            lambda: self._api.get(self.collection, params=params),
        )

    async def get(self, item_id: str) -> dict:
        return await self._read(
            f"item:{item_id}", lambda: self._api.get(f"{self.collection}/{item_id}")
        )

    async def create(self, data: dict) -> dict:
        created = await self._api.post(self.collection, json=data)
        await self._invalidate(self.resource, *self.related)
        return created

    async def update(self, item_id: str, data: dict) -> dict:
        updated = await self._api.put(f"{self.collection}/{item_id}", json=data)
        await self._invalidate(self.resource, *self.related)
        return updated

    async def delete(self, item_id: str) -> Any:
        result = await self._api.delete(f"{self.collection}/{item_id}")
        await self._invalidate(self.resource, *self.related)
        return result


class ClassService(ResourceService):
    resource = "classes"
    collection = "/classes"
    related = ("subjects",)

    async def subjects(self, class_id: str) -> list[dict]:
        return await self._read(
            f"{class_id}:subjects",
            lambda: self._api.get(f"/subjects/class/{class_id}"),
        )

    async def add_subject(self, class_id: str, subject_id: str) -> dict:
        result = await self._api.post(
            f"/classes/{class_id}/subjects", json={"subjectId": subject_id}
        )
        await self._invalidate("classes", "subjects")
        return result

    async def remove_subject(self, class_id: str, subject_id: str) -> Any:
        result = await self._api.delete(f"/classes/{class_id}/subjects/{subject_id}")
        await self._invalidate("classes", "subjects")
        return result


class SubjectService(ResourceService):
    resource = "subjects"
    collection = "/subjects"
    related = ("classes", "chapters")

    async def by_class(self, class_id: str) -> list[dict]:
        return await self._read(
            f"class:{class_id}", lambda: self._api.get(f"/subjects/class/{class_id}")
        )

    async def chapters(self, subject_id: str) -> list[dict]:
        return await self._read(
            f"{subject_id}:chapters",
            lambda: self._api.get(f"/chapters/subject/{subject_id}"),
        )

    async def add_chapter(self, subject_id: str, chapter_id: str) -> dict:
        result = await self._api.post(
            f"/subjects/{subject_id}/chapters", json={"chapterId": chapter_id}
        )
        await self._invalidate("subjects", "chapters")
        return result

    async def remove_chapter(self, subject_id: str, chapter_id: str) -> Any:
        result = await self._api.delete(f"/subjects/{subject_id}/chapters/{chapter_id}")
        await self._invalidate("subjects", "chapters")
        return result


class ChapterService(ResourceService):
    resource = "chapters"
    collection = "/chapters"
    related = ("subjects",)

    async def search(self, search: str | None = None) -> list[dict]:
        return await self.list({"search": search} if search else None)

    async def by_subject(self, subject_id: str) -> list[dict]:
        return await self._read(
            f"subject:{subject_id}",
            lambda: self._api.get(f"/chapters/subject/{subject_id}"),
        )

    async def update_order(self, chapter_id: str, order: int) -> dict:
        result = await self._api.put(f"/chapters/{chapter_id}/order", json={"order": order})
        await self._invalidate("chapters", "subjects")
        return result

    async def reorder(self, subject_id: str, chapters: list[dict]) -> Any:
        result = await self._api.post(
            "/chapters/reorder", json={"subjectId": subject_id, "chapters": chapters}
        )
        await self._invalidate("chapters", "subjects")
        return result

    async def add_lecture(self, chapter_id: str, lecture_id: str) -> Any:
        result = await self._api.post(f"/chapters/{chapter_id}/lectures/{lecture_id}")
        await self._invalidate("chapters", "lectures")
        return result

    async def remove_lecture(self, chapter_id: str, lecture_id: str) -> Any:
        result = await self._api.delete(f"/chapters/{chapter_id}/lectures/{lecture_id}")
        await self._invalidate("chapters", "lectures")
        return result

    async def dependencies(self, chapter_id: str) -> dict:
        # Deletion safety check; always fresh
        return await self._api.get(f"/chapters/{chapter_id}/dependencies")


class FeatureFlagService(ResourceService):
    """Feature flags are stored upstream as boolean system settings."""

    resource = "feature_flags"
    collection = "/settings"

    async def create(self, data: dict) -> dict:
        payload = {
            "key": data["key"],
            "value": data["value"],
            "type": "system",
            "valueType": "boolean",
            "scope": "global",
            "description": data.get("description", ""),
        }
        return await super().create(payload)

    async def toggle(self, flag_id: str, value: bool) -> dict:
        result = await self._api.patch(f"/settings/{flag_id}", json={"value": value})
        await self._invalidate()
        return result

    async def client_enabled(self) -> list[dict]:
        return await self._read(
            "client-enabled", lambda: self._api.get("/feature-flags/client/enabled")
        )
