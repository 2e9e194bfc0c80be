"""Server-side session storage.

The browser only holds a signed cookie naming a session id.  The
upstream bearer token and the user object stay here, so they never
travel in a readable cookie.
"""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

from portal.models.session import Session


@runtime_checkable
class SessionStore(Protocol):
    async def get(self, session_id: str) -> Session | None: ...
    async def save(self, session: Session) -> None: ...
    async def delete(self, session_id: str) -> None: ...


class InMemorySessionStore:
    """In-memory store for dev and tests.  Sessions die with the process."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def save(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class RedisSessionStore:
    """Redis-backed store; entries expire with the session cookie."""

    _PREFIX = "session:"

    def __init__(self, redis_client, ttl_seconds: int) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def get(self, session_id: str) -> Session | None:
        raw = await self._redis.get(f"{self._PREFIX}{session_id}")
        if raw is None:
            return None
        return Session.from_dict(json.loads(raw))

    async def save(self, session: Session) -> None:
        await self._redis.setex(
            f"{self._PREFIX}{session.session_id}",
            self._ttl,
            json.dumps(session.to_dict()),
        )

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{session_id}")
