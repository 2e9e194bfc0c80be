"""Process-wide collaborators, built once at the app root.

Handlers reach these through ``request.app.state.context`` (via the
dependencies in ``portal.api.dependencies``), never through module
globals, so tests can build an app around their own context.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from portal.clients.lms_api import LmsApiClient, build_http_client
from portal.core.config import Settings
from portal.db.redis import build_redis
from portal.models.session import Session
from portal.services.cache import CacheService, InMemoryCacheService, RedisCacheService
from portal.services.progress_sync import ProgressSyncRegistry
from portal.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)


@dataclass
class PortalContext:
    settings: Settings
    http: httpx.AsyncClient
    cache: CacheService
    sessions: SessionStore
    registry: ProgressSyncRegistry
    redis: object | None = None

    def api(self, session: Session | None = None) -> LmsApiClient:
        """LMS client carrying the session's bearer token (or none)."""
        return LmsApiClient(self.http, session.token if session else None)


def build_context(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PortalContext:
    """Wire the portal from settings.  ``transport`` replaces the network in tests."""
    redis_client = build_redis(settings.redis_url)
    if redis_client is not None:
        cache: CacheService = RedisCacheService(redis_client)
        sessions: SessionStore = RedisSessionStore(redis_client, settings.session_ttl_seconds)
    else:
        cache = InMemoryCacheService()
        sessions = InMemorySessionStore()

    return PortalContext(
        settings=settings,
        http=build_http_client(
            settings.api_base_url, settings.api_timeout_seconds, transport=transport
        ),
        cache=cache,
        sessions=sessions,
        registry=ProgressSyncRegistry(
            completion_threshold=settings.progress_completion_threshold,
            debounce_seconds=settings.progress_debounce_seconds,
            idle_timeout_seconds=settings.lecture_view_idle_seconds,
        ),
        redis=redis_client,
    )
