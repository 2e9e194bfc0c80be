from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.api.aptitude import router as aptitude_router
from portal.api.auth import router as auth_router
from portal.api.chapters import router as chapters_router
from portal.api.classes import router as classes_router
from portal.api.dashboards import router as dashboards_router
from portal.api.errors import register_exception_handlers
from portal.api.feature_flags import router as feature_flags_router
from portal.api.health import router as health_router
from portal.api.lectures import router as lectures_router
from portal.api.metrics_endpoint import router as metrics_router
from portal.api.study_plans import router as study_plans_router
from portal.api.subjects import router as subjects_router
from portal.context import PortalContext, build_context
from portal.core.config import SETTINGS
from portal.core.logging import setup_logging
from portal.db.redis import lifespan_redis
from portal.middleware.access_gate import AccessGateMiddleware
from portal.middleware.metrics import MetricsMiddleware
from portal.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


def create_app(context: PortalContext | None = None) -> FastAPI:
    """Build the portal around *context* (built from SETTINGS when omitted)."""
    context = context or build_context(SETTINGS)
    settings = context.settings

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        # Nested so teardown runs in reverse order even if one step fails:
        # open lecture views flush through the HTTP pool before it closes.
        async with lifespan_redis(context.redis):  # type: ignore[arg-type]
            try:
                yield
            finally:
                await context.registry.aclose()
                await context.http.aclose()

    app = FastAPI(
        title="k12-portal",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.context = context

    register_exception_handlers(app)

    # Middleware execution order: last-added runs first (outermost layer).
    # RequestContext (outermost) → Metrics → CORS → AccessGate → route handler
    # Gate redirects are still timed, counted and logged; CORS preflights
    # are answered before the gate asks for a session.
    app.add_middleware(AccessGateMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(dashboards_router)
    app.include_router(classes_router)
    app.include_router(subjects_router)
    app.include_router(chapters_router)
    app.include_router(study_plans_router)
    app.include_router(feature_flags_router)
    app.include_router(aptitude_router)
    app.include_router(lectures_router)

    return app


app = create_app()

logger.info(
    "k12-portal started  env=%s log_level=%s port=%d api=%s redis=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.api_base_url,
    "on" if SETTINGS.redis_url else "off",
)
