"""
OpsDesk SLA - Main Application
==============================

SLA deadline and status tracking for operations requests and tasks.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, SLA calculations
- Infrastructure: Database, config watcher, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from opsdesk.config import settings, VALID_ENTITY_KINDS
from opsdesk.core import ApplicationException

# Infrastructure
from opsdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)

# SLA Module
from opsdesk.sla.application import PolicyCache, SLATrackingService, CachedPolicyRepository
from opsdesk.sla.infrastructure import (
    SLAConfigManager,
    SLAScheduler,
    SQLAlchemySlaPolicyRepository,
    build_entity_store_registry,
    seed_policies,
)
from opsdesk.sla.interfaces import sla_router

# Shared
from opsdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)
from opsdesk.shared.infrastructure.logging import setup_logging, get_logger, log_latency

logger = get_logger(__name__)


async def refresh_sla_statuses(config_manager: SLAConfigManager, policy_cache: PolicyCache) -> None:
    """Background job: refresh the stored SLA status of every tracked entity."""
    for entity_kind in VALID_ENTITY_KINDS:
        try:
            with log_latency(logger, "sla_refresh", entity_kind=entity_kind):
                async with get_session_context() as session:
                    service = SLATrackingService(
                        CachedPolicyRepository(SQLAlchemySlaPolicyRepository(session), policy_cache),
                        build_entity_store_registry(session),
                        config_manager
                    )
                    await service.refresh_all(entity_kind)
        except Exception as e:
            logger.error(
                "SLA refresh job failed",
                extra={"entity_kind": entity_kind, "error": str(e)}
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and start watching it
    4. Seed SLA policies into an empty store
    5. Start the SLA refresh scheduler

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop config watcher
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting OpsDesk SLA service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use Alembic in production)
    await create_tables()

    # SLA configuration; reloads drop cached policy lookups
    policy_cache = PolicyCache(ttl_seconds=settings.sla_policy_cache_ttl_seconds)
    sla_config_manager = SLAConfigManager()
    sla_config = sla_config_manager.load(settings.sla_config_path)
    sla_config_manager.add_reload_callback(lambda _config: policy_cache.invalidate())
    sla_config_manager.start_watching()

    async with get_session_context() as session:
        await seed_policies(session, sla_config)

    sla_scheduler = None
    if settings.sla_refresh_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_refresh_interval)

        async def sla_refresh_job():
            await refresh_sla_statuses(sla_config_manager, policy_cache)

        await sla_scheduler.start(sla_refresh_job)
    else:
        logger.info("SLA refresh job disabled")

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.sla_config = sla_config_manager
    app.state.policy_cache = policy_cache
    app.state.sla_scheduler = sla_scheduler

    logger.info("OpsDesk SLA service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down OpsDesk SLA service")

    if sla_scheduler:
        await sla_scheduler.stop()

    sla_config_manager.stop_watching()

    await close_database()

    logger.info("OpsDesk SLA service shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="OpsDesk SLA API",
        description="""
        ## SLA deadline and status tracking

        Requests and tasks carry a service-level agreement. This service
        resolves the applicable policy, computes the deadline, classifies the
        live status and pauses or resumes the SLA clock.

        **Statuses:** `ON_TIME`, `AT_RISK` (less than 25% of the window left by
        default), `OVERDUE`, `PAUSED`

        **Pause reasons:** `MEETING`, `CUSTOMER_VISIT`, `CLARIFICATION`, `MANUAL`
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(sla_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "sla_config": "loaded",
                            "sla_scheduler": "running"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports SLA configuration and scheduler state.
        """
        scheduler = getattr(request.app.state, "sla_scheduler", None)
        checks = {
            "sla_config": "loaded" if getattr(request.app.state, "sla_config", None) else "missing",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        }

        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "OpsDesk SLA",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "sla": {
                    "prefix": "/sla",
                    "endpoints": [
                        "GET /sla/policies - List active policies",
                        "GET /sla/policies/resolve - Resolve applicable policy",
                        "POST /sla/{kind}/{id}/tracking - Start tracking",
                        "GET /sla/{kind}/{id}/status - Live SLA status",
                        "POST /sla/{kind}/{id}/refresh - Recompute stored status",
                        "POST /sla/{kind}/{id}/pause - Pause SLA clock",
                        "POST /sla/{kind}/{id}/resume - Resume SLA clock",
                        "GET /sla/{kind}/{id}/pauses - Pause history",
                        "GET /sla/{kind}/{id}/pauses/stats - Pause statistics"
                    ]
                }
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "opsdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
