from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Annotated, TypeVar

from fastapi import Depends, HTTPException, Request, Response, status

from portal.clients.lms_api import LmsApiClient
from portal.context import PortalContext
from portal.models.session import Session
from portal.services.assessments import AssessmentService
from portal.services.auth_service import AuthService
from portal.services.enrollments import EnrollmentService
from portal.services.resources import CachedService
from portal.services.session_tokens import COOKIE_NAME, create_session_token

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=CachedService)


def get_context(request: Request) -> PortalContext:
    return request.app.state.context


def require_session(request: Request) -> Session:
    """The Session the access gate resolved for this request.

    Used as a FastAPI dependency on every signed-in endpoint.
    """
    session = getattr(request.state, "session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return session


def require_user_type(*user_types: str):
    """Dependency factory: demand one of the given user types.

    Usage: Depends(require_user_type("admin"))
    Returns the Session if the user's type matches, else 403.
    """

    def _guard(session: Annotated[Session, Depends(require_session)]) -> Session:
        if session.user.type not in user_types:
            logger.warning(
                "Access denied: user=%s type=%s required=%s",
                session.user.id,
                session.user.type,
                user_types,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return session

    return _guard


def get_api(
    context: Annotated[PortalContext, Depends(get_context)],
    session: Annotated[Session, Depends(require_session)],
) -> LmsApiClient:
    return context.api(session)


def cached_service(service_cls: type[S]) -> Callable[..., S]:
    """Dependency factory: a per-request CachedService bound to the session's user.

    Usage: Annotated[ClassService, Depends(cached_service(ClassService))]
    """

    def _build(
        context: Annotated[PortalContext, Depends(get_context)],
        session: Annotated[Session, Depends(require_session)],
    ) -> S:
        return service_cls(
            context.api(session),
            context.cache,
            user_id=session.user.id,
            ttl_seconds=context.settings.cache_ttl_seconds,
        )

    return _build


def get_enrollments(api: Annotated[LmsApiClient, Depends(get_api)]) -> EnrollmentService:
    return EnrollmentService(api)


def get_assessments(
    api: Annotated[LmsApiClient, Depends(get_api)],
    enrollments: Annotated[EnrollmentService, Depends(get_enrollments)],
) -> AssessmentService:
    return AssessmentService(api, enrollments)


def get_auth_service(
    context: Annotated[PortalContext, Depends(get_context)],
) -> AuthService:
    return AuthService(context.api(), context.sessions, context.registry)


# ---------------------------------------------------------------------------
# Session cookie
# ---------------------------------------------------------------------------


def set_session_cookie(response: Response, session: Session, context: PortalContext) -> None:
    settings = context.settings
    response.set_cookie(
        key=COOKIE_NAME,
        value=create_session_token(
            session,
            secret=settings.session_secret,
            ttl_seconds=settings.session_ttl_seconds,
        ),
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.is_prod,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME)
