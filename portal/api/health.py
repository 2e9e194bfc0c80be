"""Health and readiness endpoints.

/health (liveness) answers "is the process alive"; it returns 200 even
when a dependency is impaired and reports that in ``status``.
/ready (readiness) answers "can this instance take traffic".  Redis is
optional (in-memory fallbacks exist) and the LMS API is remote, so
neither blocks readiness.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from portal.api.dependencies import get_context
from portal.context import PortalContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(context: Annotated[PortalContext, Depends(get_context)]) -> dict:
    checks: dict[str, str] = {}
    overall = "ok"

    if context.redis is not None:
        try:
            await context.redis.ping()  # type: ignore[attr-defined]
            checks["redis"] = "ok"
        except Exception:
            logger.warning("Redis ping failed", exc_info=True)
            checks["redis"] = "degraded"
            overall = "degraded"
    else:
        checks["redis"] = "not_configured"

    checks["upstream"] = "configured" if context.settings.api_base_url else "not_configured"
    if not context.settings.api_base_url:
        overall = "degraded"

    return {
        "status": overall,
        "checks": checks,
        "open_lecture_views": len(context.registry),
    }


@router.get("/ready")
async def ready() -> Response:
    return Response(status_code=200)
