"""Subject access gate.

Before a student reaches subject content, the LMS enrollment service is
asked whether they may see it (aptitude test passed, payment made).
A "no" sends them to the pending-assessment page.  A failed check lets
them through: an infrastructure hiccup must not lock students out of
content they are entitled to.

Subject pages name their subject in the path.  Lecture and chapter pages
do not, so their subject is looked up in the LMS (lecture → chapter →
subject) and cached; a client-supplied ``subjectId`` is never trusted.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from portal.clients.errors import ApiError
from portal.clients.lms_api import LmsApiClient
from portal.core.metrics import SUBJECT_ACCESS_CHECKS
from portal.services.cache import CacheService, read_through
from portal.services.enrollments import EnrollmentService

logger = logging.getLogger(__name__)

# The subject id is the path segment right after these
SUBJECT_PATH_PREFIXES: tuple[str, ...] = (
    "/student/subjects",
    "/dashboard/subjects",
    "/subjects",
)

# The path segment after these is a lecture or chapter id
SUBJECT_LOOKUP_PREFIXES: tuple[tuple[str, str], ...] = (
    ("/student/lectures", "lecture"),
    ("/student/chapters", "chapter"),
    ("/lectures", "lecture"),
    ("/chapters", "chapter"),
)

EXEMPT_PREFIXES: tuple[str, ...] = (
    "/assessment",
    "/api",
    "/admin",
    "/parent",
    "/teacher",
)

PENDING_ASSESSMENT_PATH = "/aptitude-test"


class AccessDecision(str, enum.Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    ERROR_ALLOWED = "error_allowed"

    @property
    def permits(self) -> bool:
        return self is not AccessDecision.DENIED


def _under(path: str, prefix: str) -> bool:
    """Segment-aware prefix match: /subjects matches /subjects/x, not /subjectsx."""
    return path == prefix or path.startswith(prefix + "/")


def _first_segment(path: str, prefix: str) -> str | None:
    return path[len(prefix) :].lstrip("/").split("/", 1)[0] or None


def is_exempt(path: str) -> bool:
    # Plain string prefix, so /assessments/... is exempt along with /assessment/...
    return any(path.startswith(p) for p in EXEMPT_PREFIXES)


def is_gated_path(path: str) -> bool:
    if is_exempt(path):
        return False
    prefixes = SUBJECT_PATH_PREFIXES + tuple(p for p, _ in SUBJECT_LOOKUP_PREFIXES)
    return any(_under(path, p) for p in prefixes)


def extract_subject_id(path: str) -> str | None:
    """Subject id named in the path of a subject page, or None."""
    if is_exempt(path):
        return None
    for prefix in SUBJECT_PATH_PREFIXES:
        if _under(path, prefix):
            return _first_segment(path, prefix)
    return None


def subject_lookup_target(path: str) -> tuple[str, str] | None:
    """``(kind, id)`` for a lecture or chapter page, or None."""
    if is_exempt(path):
        return None
    for prefix, kind in SUBJECT_LOOKUP_PREFIXES:
        if _under(path, prefix):
            item_id = _first_segment(path, prefix)
            return (kind, item_id) if item_id else None
    return None


def _ref_id(value: Any) -> str | None:
    # References arrive as plain ids or as populated documents
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value else None


async def _load_subject_id(api: LmsApiClient, kind: str, item_id: str) -> str | None:
    chapter_id: str | None = item_id
    if kind == "lecture":
        lecture = await api.get(f"/lectures/{item_id}")
        if not isinstance(lecture, dict):
            raise ValueError(f"malformed lecture response: {lecture!r}")
        subject_id = _ref_id(lecture.get("subjectId") or lecture.get("subject"))
        if subject_id:
            return subject_id
        chapter = lecture.get("chapterId") or lecture.get("chapter")
        if isinstance(chapter, dict) and chapter.get("subjectId"):
            return _ref_id(chapter["subjectId"])
        chapter_id = _ref_id(chapter)
        if chapter_id is None:
            return None

    chapter = await api.get(f"/chapters/{chapter_id}")
    if not isinstance(chapter, dict):
        raise ValueError(f"malformed chapter response: {chapter!r}")
    return _ref_id(chapter.get("subjectId") or chapter.get("subject"))


async def lookup_subject_id(
    api: LmsApiClient,
    cache: CacheService,
    kind: str,
    item_id: str,
    *,
    ttl_seconds: int,
) -> str | None:
    """Subject a lecture or chapter belongs to.

    Raises ApiError / ValueError when the LMS cannot say; failures are
    not cached.
    """
    return await read_through(
        cache,
        f"subject-of:{kind}:{item_id}",
        ttl_seconds,
        lambda: _load_subject_id(api, kind, item_id),
    )


async def check_subject_access(
    enrollments: EnrollmentService,
    student_id: str,
    subject_id: str,
) -> AccessDecision:
    """Ask the enrollment service; fail open on any error."""
    try:
        access = await enrollments.check_access(student_id, subject_id)
    except (ApiError, ValueError):
        logger.warning(
            "Subject access check failed, allowing  student=%s subject=%s",
            student_id,
            subject_id,
            exc_info=True,
        )
        decision = AccessDecision.ERROR_ALLOWED
    else:
        if access.has_access:
            decision = AccessDecision.ALLOWED
        else:
            logger.info(
                "Subject access denied  student=%s subject=%s reason=%s",
                student_id,
                subject_id,
                access.reason,
            )
            decision = AccessDecision.DENIED

    SUBJECT_ACCESS_CHECKS.labels(decision=decision.value).inc()
    return decision
