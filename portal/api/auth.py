"""Sign-in, sign-out, OTP, password reset and parent registration.

Successful sign-in sets the signed ``session`` cookie and answers with
the user and the path the browser should go to next.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from portal.api.dependencies import (
    clear_session_cookie,
    get_auth_service,
    get_context,
    require_session,
    require_user_type,
    set_session_cookie,
)
from portal.clients.errors import SessionExpiredError, UpstreamValidationError
from portal.context import PortalContext
from portal.middleware.access_gate import resolve_session
from portal.models.session import PortalUser, Session
from portal.services.auth_service import AuthService, landing_path

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# --- Request schemas ------------------------------------------------------


class LoginIn(BaseModel):
    email: str
    password: str


class OtpIn(BaseModel):
    otp: str = Field(min_length=4, max_length=8)


class ForgotPasswordIn(BaseModel):
    email: str


class ResetPasswordIn(BaseModel):
    token: str
    newPassword: str = Field(min_length=8)


class ParentRegistrationIn(BaseModel):
    name: str = Field(min_length=2)
    email: str
    password: str = Field(min_length=8)
    phone: str
    country: str
    city: str


class StudentRegistrationIn(BaseModel):
    name: str = Field(min_length=2)
    email: str
    classId: str
    dob: str | None = None
    gender: str | None = None


def _user_view(user: PortalUser) -> dict:
    status_ = user.aptitude_test_status
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "type": user.type,
        "isVerified": user.is_verified,
        "classId": user.class_id,
        "aptitudeTestStatus": (
            {
                "attempted": status_.attempted,
                "passed": status_.passed,
                "testId": status_.test_id,
                "lastAttemptDate": status_.last_attempt_date,
            }
            if status_ is not None
            else None
        ),
    }


def _signed_in(
    response: Response, session: Session, redirect_to: str, context: PortalContext
) -> dict:
    set_session_cookie(response, session, context)
    return {"user": _user_view(session.user), "redirect_to": redirect_to}


# --- POST /login ----------------------------------------------------------


@router.post("/login")
async def login(
    payload: LoginIn,
    response: Response,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    context: Annotated[PortalContext, Depends(get_context)],
) -> dict:
    email = payload.email.lower().strip()
    logger.info("Login attempt  email=%s", email)
    try:
        session, redirect_to = await auth.login(email, payload.password)
    except (SessionExpiredError, UpstreamValidationError) as e:
        logger.warning("Login failed  email=%s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message or "Login failed",
        ) from None
    return _signed_in(response, session, redirect_to, context)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    context: Annotated[PortalContext, Depends(get_context)],
) -> dict:
    # /logout is public, so the gate has not resolved the session
    session = await resolve_session(request, context)
    if session is not None:
        await auth.logout(session)
    clear_session_cookie(response)
    return {"redirect_to": "/login"}


@router.post("/verify-otp/{user_id}")
async def verify_otp(
    user_id: str,
    payload: OtpIn,
    response: Response,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    context: Annotated[PortalContext, Depends(get_context)],
) -> dict:
    result = await auth.verify_otp(user_id, payload.otp)
    if result is None:
        return {"verified": True, "redirect_to": "/login"}
    session, redirect_to = result
    return {"verified": True, **_signed_in(response, session, redirect_to, context)}


@router.post("/forgot-password", status_code=status.HTTP_202_ACCEPTED)
async def forgot_password(
    payload: ForgotPasswordIn,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> dict:
    await auth.request_password_reset(payload.email.lower().strip())
    return {"message": "Password reset email sent. Please check your inbox."}


@router.post("/reset-password")
async def reset_password(
    payload: ResetPasswordIn,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> dict:
    await auth.reset_password(payload.token, payload.newPassword)
    return {"message": "Password reset successfully. You can now login.", "redirect_to": "/login"}


@router.post("/register/parent", status_code=status.HTTP_201_CREATED)
async def register_parent(
    payload: ParentRegistrationIn,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> dict:
    data = payload.model_dump()
    data["email"] = data["email"].lower().strip()
    result = await auth.register_parent(data)
    return {**result, "redirect_to": f"/verify-otp/{result['userId']}"}


@router.post("/parent/children", status_code=status.HTTP_201_CREATED)
async def register_student(
    payload: StudentRegistrationIn,
    session: Annotated[Session, Depends(require_user_type("parent"))],
    auth: Annotated[AuthService, Depends(get_auth_service)],
    context: Annotated[PortalContext, Depends(get_context)],
) -> dict:
    data = payload.model_dump()
    data["email"] = data["email"].lower().strip()
    result = await auth.register_student(session, data)
    # The parent's children list is cached
    await context.cache.delete_pattern("students:*")
    return result


@router.get("/me")
async def me(session: Annotated[Session, Depends(require_session)]) -> dict:
    return {"user": _user_view(session.user), "landing_path": landing_path(session.user)}
