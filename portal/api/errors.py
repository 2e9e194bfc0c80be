"""Map LMS API failures onto portal responses.

Page-level data failures reach the browser as a generic message; the
detail goes to the log.  Upstream validation messages are the one
exception: they are meant for the user ("Email already registered").
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from portal.api.dependencies import clear_session_cookie
from portal.clients.errors import (
    NotFoundError,
    SessionExpiredError,
    UpstreamError,
    UpstreamUnavailableError,
    UpstreamValidationError,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."


async def _session_expired(request: Request, exc: SessionExpiredError) -> JSONResponse:
    session = getattr(request.state, "session", None)
    if session is not None:
        context = request.app.state.context
        context.registry.close_session(session.session_id)
        await context.sessions.delete(session.session_id)
        logger.info("Upstream rejected the session token  user=%s", session.user.id)

    response = JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Session expired", "redirect_to": "/login"},
    )
    clear_session_cookie(response)
    return response


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Not found"})


async def _validation(request: Request, exc: UpstreamValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": exc.message})


async def _upstream(request: Request, exc: UpstreamError | UpstreamUnavailableError) -> JSONResponse:
    logger.exception(
        "Upstream failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": GENERIC_ERROR}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionExpiredError, _session_expired)  # type: ignore[arg-type]
    app.add_exception_handler(NotFoundError, _not_found)  # type: ignore[arg-type]
    app.add_exception_handler(UpstreamValidationError, _validation)  # type: ignore[arg-type]
    app.add_exception_handler(UpstreamError, _upstream)  # type: ignore[arg-type]
    app.add_exception_handler(UpstreamUnavailableError, _upstream)  # type: ignore[arg-type]
