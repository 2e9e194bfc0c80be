"""Signed session cookie (HS256 JWT).

The cookie proves "this browser signed in through the portal" and names
the server-side session.  It carries the user type so the middleware can
route by role without a store lookup.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt

from portal.models.session import Session

ALGORITHM = "HS256"
ISSUER = "k12-portal"
AUDIENCE = "k12-portal-session"
COOKIE_NAME = "session"


def create_session_token(session: Session, *, secret: str, ttl_seconds: int) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": session.user.id,
        "sid": session.session_id,
        "type": session.user.type,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(seconds=ttl_seconds),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_session_token(token: str, *, secret: str, verify_exp: bool = True) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm so an ``alg: none`` cookie is rejected.
    ``verify_exp=False`` reads an expired cookie's claims (signature still
    checked) so its session can be cleaned up.
    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        secret,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={
            "require": ["sub", "sid", "type", "exp", "iat"],
            "verify_exp": verify_exp,
        },
    )
