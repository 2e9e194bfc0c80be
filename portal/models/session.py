from __future__ import annotations

import time
from dataclasses import asdict, dataclass, replace
from typing import Literal
from uuid import uuid4

UserType = Literal["student", "parent", "teacher", "admin"]
USER_TYPES: tuple[str, ...] = ("student", "parent", "teacher", "admin")


@dataclass(frozen=True, slots=True)
class AptitudeTestStatus:
    attempted: bool = False
    passed: bool = False
    test_id: str | None = None
    last_attempt_date: str | None = None


@dataclass(frozen=True, slots=True)
class PortalUser:
    """The signed-in user as the LMS API describes them."""

    id: str
    name: str
    email: str
    type: UserType
    is_verified: bool = False
    class_id: str | None = None
    aptitude_test_status: AptitudeTestStatus | None = None

    @property
    def is_student(self) -> bool:
        return self.type == "student"

    @staticmethod
    def from_api(data: dict, *, class_id: str | None = None) -> PortalUser:
        """Build from an upstream user object (``_id`` or ``id``)."""
        user_type = data.get("type")
        if user_type not in USER_TYPES:
            raise ValueError(f"unknown user type {user_type!r}")
        user_id = data.get("_id") or data.get("id")
        if not user_id:
            raise ValueError("user object has no id")
        return PortalUser(
            id=str(user_id),
            name=data.get("name", ""),
            email=data.get("email", ""),
            type=user_type,
            is_verified=bool(data.get("isVerified", False)),
            class_id=class_id or data.get("classId"),
        )


@dataclass(frozen=True, slots=True)
class Session:
    """One signed-in browser: the upstream bearer token plus its user.

    Built once at login and threaded explicitly through handlers and
    services, never read from ambient storage.
    """

    session_id: str
    token: str
    user: PortalUser
    created_at: int

    @staticmethod
    def new(*, token: str, user: PortalUser) -> Session:
        return Session(
            session_id=uuid4().hex,
            token=token,
            user=user,
            created_at=int(time.time()),
        )

    def with_aptitude_status(self, status: AptitudeTestStatus) -> Session:
        return replace(self, user=replace(self.user, aptitude_test_status=status))

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict) -> Session:
        user = dict(data["user"])
        status = user.pop("aptitude_test_status", None)
        return Session(
            session_id=data["session_id"],
            token=data["token"],
            user=PortalUser(
                **user,
                aptitude_test_status=AptitudeTestStatus(**status) if status else None,
            ),
            created_at=data["created_at"],
        )
