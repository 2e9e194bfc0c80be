from __future__ import annotations

import sys
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import portal` and `import tests` work under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.context import PortalContext, build_context  # noqa: E402
from portal.core.config import SETTINGS, Settings  # noqa: E402
from portal.main import create_app  # noqa: E402
from tests.fakes import BASE_URL, FakeLmsApi  # noqa: E402

# Short enough to keep tests fast, long enough that a burst of requests
# from the test thread lands inside one window.
TEST_DEBOUNCE_SECONDS = 0.2

STUDENT_ID = "stu-1"
PARENT_ID = "par-1"
ADMIN_ID = "adm-1"
CLASS_ID = "class-7"


@pytest.fixture
def lms() -> FakeLmsApi:
    return FakeLmsApi()


@pytest.fixture
def settings() -> Settings:
    return replace(
        SETTINGS,
        app_env="test",
        api_base_url=BASE_URL,
        redis_url=None,
        cache_ttl_seconds=30,
        progress_completion_threshold=90.0,
        progress_debounce_seconds=TEST_DEBOUNCE_SECONDS,
    )


@pytest.fixture
def context(settings: Settings, lms: FakeLmsApi) -> PortalContext:
    """A fresh context per test: empty cache, session store and registry."""
    return build_context(settings, transport=lms.transport())


@pytest.fixture
def client(context: PortalContext) -> Iterator[TestClient]:
    # The with-block keeps one event loop alive across requests, so
    # debounce timers started by one request fire while the test waits.
    with TestClient(create_app(context), follow_redirects=False) as c:
        yield c


def aptitude_result(percentage: float, *, passing: float | None = 70, status: str = "completed") -> dict:
    result = {
        "_id": f"res-{percentage}",
        "assessmentId": {"_id": "apt-1", "title": "Aptitude"},
        "status": status,
        "percentageScore": percentage,
        "createdAt": "2026-09-01T10:00:00Z",
    }
    if passing is not None:
        result["passingScore"] = passing
    return result


def login_as(
    client: TestClient,
    lms: FakeLmsApi,
    user_type: str = "student",
    *,
    user_id: str | None = None,
    passed: bool = True,
    class_id: str | None = CLASS_ID,
) -> dict:
    """Sign in through POST /login against a faked upstream; returns the body."""
    user_id = user_id or {"student": STUDENT_ID, "parent": PARENT_ID}.get(user_type, ADMIN_ID)
    profile = {"data": [{"key": "classId", "value": class_id}]} if class_id else None
    lms.add(
        "POST",
        "/auth/login",
        {
            "access_token": f"upstream-token-{user_id}",
            "user": {
                "_id": user_id,
                "name": f"Test {user_type.title()}",
                "email": f"{user_id}@example.com",
                "type": user_type,
                "isVerified": True,
            },
            "profile": profile,
        },
    )
    if user_type == "student":
        lms.add(
            "GET",
            f"/assessment-results/student/{user_id}",
            [aptitude_result(85 if passed else 40)],
        )
    resp = client.post("/login", json={"email": f"{user_id}@example.com", "password": "pw"})
    assert resp.status_code == 200, resp.text
    return resp.json()
