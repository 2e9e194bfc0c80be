"""Sign-in, sign-out and account flows against the LMS auth endpoints.

The LMS API owns credentials and OTPs; this service turns its answers
into a server-side ``Session`` and decides where the user lands.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from portal.clients.errors import ApiError, UpstreamError, UpstreamValidationError
from portal.clients.lms_api import LmsApiClient
from portal.models.session import AptitudeTestStatus, PortalUser, Session
from portal.services.assessments import evaluate_aptitude_status
from portal.services.progress_sync import ProgressSyncRegistry
from portal.services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Role documents the LMS API assigns to self-registered accounts
PARENT_ROLE_ID = "679cd2ec2b0f000ac3e9a147"
STUDENT_ROLE_ID = "679cd2e82b0f000ac3e9a145"

REGISTRATION_MESSAGE = "Registration successful! Please verify your email with the OTP sent."


def landing_path(user: PortalUser) -> str:
    """Where a freshly signed-in user goes."""
    if user.type in ("admin", "teacher", "parent"):
        return f"/{user.type}/dashboard"
    if user.type == "student":
        status = user.aptitude_test_status
        if status is not None and status.passed:
            return "/student/dashboard"
        return "/aptitude-test"
    return "/login"


def _profile_value(profile: Any, key: str) -> Any:
    """Look up one entry in a profile's ``data`` key/value list."""
    if not isinstance(profile, dict) or not isinstance(profile.get("data"), list):
        return None
    for item in profile["data"]:
        if isinstance(item, dict) and item.get("key") == key:
            return item.get("value")
    return None


class AuthService:
    def __init__(
        self,
        api: LmsApiClient,
        sessions: SessionStore,
        registry: ProgressSyncRegistry,
    ) -> None:
        # Unauthenticated client; per-session clients come from with_token()
        self._api = api
        self._sessions = sessions
        self._registry = registry

    async def login(self, email: str, password: str) -> tuple[Session, str]:
        """Authenticate upstream, persist a session, return it with its landing path.

        Raises SessionExpiredError / UpstreamValidationError on bad
        credentials, as the LMS API reports them.
        """
        body = await self._api.post("/auth/login", json={"email": email, "password": password})
        session = await self._start_session(body)
        logger.info("User logged in  user=%s type=%s", session.user.id, session.user.type)
        return session, landing_path(session.user)

    async def verify_otp(self, user_id: str, otp: str) -> tuple[Session, str] | None:
        """Verify an emailed OTP.  The LMS API signs the user in on success."""
        body = await self._api.post(f"/users/verify-otp/{user_id}", json={"otp": otp})
        if not isinstance(body, dict) or not body.get("user"):
            logger.info("OTP verified without sign-in  user=%s", user_id)
            return None
        session = await self._start_session(body)
        logger.info("User verified and logged in  user=%s", session.user.id)
        return session, landing_path(session.user)

    async def logout(self, session: Session) -> None:
        self._registry.close_session(session.session_id)
        await self._sessions.delete(session.session_id)
        logger.info("User logged out  user=%s", session.user.id)

    async def request_password_reset(self, email: str) -> None:
        await self._api.post("/users/forgot-password", json={"email": email})

    async def reset_password(self, token: str, new_password: str) -> None:
        await self._api.post(
            "/users/reset-password", json={"token": token, "newPassword": new_password}
        )

    async def register_parent(self, data: dict) -> dict:
        response = await self._api.post(
            "/users/register",
            json={
                "name": data["name"],
                "email": data["email"],
                "password": data["password"],
                "type": "parent",
                "roleId": PARENT_ROLE_ID,
            },
        )
        user = response.get("user") if isinstance(response, dict) else None
        user_id = user.get("_id") if isinstance(user, dict) else None
        if not user_id:
            raise UpstreamValidationError("Invalid response from server - missing user ID")

        await self._api.post(
            "/profiles",
            json={
                "userId": user_id,
                "data": [
                    {"key": "phone", "value": data.get("phone")},
                    {"key": "country", "value": data.get("country")},
                    {"key": "city", "value": data.get("city")},
                ],
            },
        )
        logger.info("Parent registered  user=%s", user_id)
        return {"userId": user_id, "message": REGISTRATION_MESSAGE}

    async def register_student(self, session: Session, data: dict) -> dict:
        """A parent registers a child.  Students skip OTP verification."""
        api = self._api.with_token(session.token)
        response = await api.post(
            "/users",
            json={
                "name": data["name"],
                "email": data["email"],
                # The child signs in through a reset link; nobody knows this one
                "password": secrets.token_urlsafe(12),
                "type": "student",
                "roleId": STUDENT_ROLE_ID,
                "isVerified": True,
                "classId": data["classId"],
            },
        )
        student_id = None
        if isinstance(response, dict):
            nested = response.get("user")
            student_id = response.get("_id") or (
                nested.get("_id") if isinstance(nested, dict) else None
            )
        if not student_id:
            raise UpstreamValidationError("Failed to get student ID from response")

        await api.post(
            "/profiles",
            json={
                "userId": student_id,
                "data": [
                    {"key": "dob", "value": data.get("dob")},
                    {"key": "gender", "value": data.get("gender")},
                    {"key": "classId", "value": data["classId"]},
                    {"key": "parentId", "value": session.user.id},
                ],
            },
        )
        logger.info("Student registered  student=%s parent=%s", student_id, session.user.id)
        return {"studentId": student_id, "message": "Student registered successfully"}

    async def check_aptitude_test_status(
        self, session: Session, user_id: str | None = None
    ) -> AptitudeTestStatus:
        """Evaluate aptitude results.  Refreshes the stored session for its own user."""
        target = user_id or session.user.id
        status = await self._aptitude_status(session.token, target)
        if target == session.user.id:
            await self._sessions.save(session.with_aptitude_status(status))
        return status

    async def refresh_session(self, session: Session, status: AptitudeTestStatus) -> Session:
        updated = session.with_aptitude_status(status)
        await self._sessions.save(updated)
        return updated

    # -- internals ---------------------------------------------------------

    async def _aptitude_status(self, token: str, user_id: str) -> AptitudeTestStatus:
        results = await self._api.with_token(token).get(
            f"/assessment-results/student/{user_id}", params={"type": "aptitude"}
        )
        return evaluate_aptitude_status(results)

    async def _start_session(self, body: Any) -> Session:
        if not isinstance(body, dict) or not body.get("access_token"):
            raise UpstreamError("Login response carried no access token")
        token = body["access_token"]
        try:
            user = PortalUser.from_api(
                body.get("user") or {},
                class_id=_profile_value(body.get("profile"), "classId"),
            )
        except ValueError as e:
            raise UpstreamError(f"Login response carried an unusable user: {e}") from e
        session = Session.new(token=token, user=user)

        if user.is_student:
            try:
                status = await self._aptitude_status(token, user.id)
            except ApiError:
                logger.warning(
                    "Aptitude status check failed at login  user=%s", user.id, exc_info=True
                )
                status = AptitudeTestStatus()
            session = session.with_aptitude_status(status)

        await self._sessions.save(session)
        return session
