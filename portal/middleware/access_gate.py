"""Session, role routing and subject access gate.

Runs in front of every non-public route, in this order:

  1. public paths pass through untouched
  2. no valid session cookie (or the session is gone) → /login?callbackUrl=;
     a session that has ended also loses its open lecture views
  3. a role area that is not the user's → the user's own dashboard
  4. the bare /dashboard → the right dashboard (students: aptitude first)
  5. students on subject, chapter or lecture content → the subject access gate

The resolved ``Session`` lands on ``request.state.session``.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from portal.clients.errors import ApiError, UpstreamUnavailableError
from portal.context import PortalContext
from portal.core.metrics import SUBJECT_ACCESS_CHECKS
from portal.models.session import Session
from portal.services.access_gate import (
    PENDING_ASSESSMENT_PATH,
    AccessDecision,
    check_subject_access,
    extract_subject_id,
    lookup_subject_id,
    subject_lookup_target,
)
from portal.services.enrollments import EnrollmentService
from portal.services.session_tokens import COOKIE_NAME, decode_session_token

logger = logging.getLogger(__name__)

PUBLIC_PATHS: tuple[str, ...] = (
    "/login",
    "/logout",
    "/signup",
    "/register",
    "/verify-otp",
    "/reset-password",
    "/forgot-password",
    "/verify-email",
    "/health",
    "/ready",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
)

ROLE_PREFIXES: dict[str, str] = {
    "student": "/student",
    "parent": "/parent",
    "teacher": "/teacher",
    "admin": "/admin",
}


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_public_path(path: str) -> bool:
    return any(_under(path, p) for p in PUBLIC_PATHS)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=307)


async def resolve_session(request: Request, context: PortalContext) -> Session | None:
    """Session named by the signed cookie, or None."""
    cookie = request.cookies.get(COOKIE_NAME)
    if not cookie:
        return None
    secret = context.settings.session_secret
    try:
        claims = decode_session_token(cookie, secret=secret)
    except jwt.ExpiredSignatureError:
        logger.debug("Session cookie expired")
        # Still signed by us, so its lecture views can be torn down
        expired = decode_session_token(cookie, secret=secret, verify_exp=False)
        context.registry.close_session(expired["sid"])
        return None
    except jwt.InvalidTokenError:
        logger.debug("Invalid session cookie")
        return None

    session = await context.sessions.get(claims["sid"])
    if session is None:
        logger.debug("Session %s no longer in the store", claims["sid"])
        context.registry.close_session(claims["sid"])
        return None
    return session


def login_redirect(request: Request) -> RedirectResponse:
    return _redirect("/login?" + urlencode({"callbackUrl": str(request.url)}))


class AccessGateMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if is_public_path(path):
            return await call_next(request)

        context: PortalContext = request.app.state.context
        session = await resolve_session(request, context)
        if session is None:
            return login_redirect(request)
        request.state.session = session
        user = session.user

        for user_type, prefix in ROLE_PREFIXES.items():
            if _under(path, prefix) and user.type != user_type:
                logger.warning(
                    "Role area mismatch  user=%s type=%s path=%s", user.id, user.type, path
                )
                return _redirect(f"/{user.type}/dashboard")

        if path == "/dashboard":
            return await self._dashboard_redirect(context, session)

        if user.is_student:
            subject_id = await self._subject_for(path, context, session)
            if subject_id is not None:
                enrollments = EnrollmentService(context.api(session))
                decision = await check_subject_access(enrollments, user.id, subject_id)
                if not decision.permits:
                    return _redirect(PENDING_ASSESSMENT_PATH)

        return await call_next(request)

    async def _subject_for(
        self, path: str, context: PortalContext, session: Session
    ) -> str | None:
        subject_id = extract_subject_id(path)
        if subject_id is not None:
            return subject_id
        target = subject_lookup_target(path)
        if target is None:
            return None

        kind, item_id = target
        try:
            return await lookup_subject_id(
                context.api(session),
                context.cache,
                kind,
                item_id,
                ttl_seconds=context.settings.cache_ttl_seconds,
            )
        except (ApiError, ValueError):
            logger.warning(
                "Subject lookup failed, allowing  %s=%s", kind, item_id, exc_info=True
            )
            SUBJECT_ACCESS_CHECKS.labels(decision=AccessDecision.ERROR_ALLOWED.value).inc()
            return None

    async def _dashboard_redirect(
        self, context: PortalContext, session: Session
    ) -> RedirectResponse:
        user = session.user
        if not user.is_student:
            return _redirect(f"/{user.type}/dashboard")

        enrollments = EnrollmentService(context.api(session))
        try:
            passed = await enrollments.all_required_tests_passed(user.id)
        except UpstreamUnavailableError:
            logger.warning(
                "Required-tests check unreachable  user=%s", user.id, exc_info=True
            )
            return _redirect("/login?error=middleware_fetch_failed")
        except (ApiError, ValueError):
            logger.warning(
                "Required-tests check failed  user=%s", user.id, exc_info=True
            )
            return _redirect("/login?error=middleware_check_failed")

        if not passed:
            return _redirect("/aptitude-test")
        return _redirect("/student/dashboard")
