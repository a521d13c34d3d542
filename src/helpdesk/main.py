"""
Helpdesk Triage - Main Application
==================================

Support-ticket helpdesk with automated triage.

New tickets are queued for a background triage run: classify, retrieve
knowledge-base articles, draft a reply, then auto-resolve or hand off to a
human based on the admin-configured confidence threshold.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, audit payloads, scoring and policy
- Infrastructure: Storage, LLM providers, dispatcher
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from helpdesk.config import Settings, settings as default_settings
from helpdesk.core import ApplicationException
from helpdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from helpdesk.shared.infrastructure.logging import setup_logging, get_logger
from helpdesk.triage.application import (
    AuditLogWriter, IHelpdeskStorage, TriageOrchestrator
)
from helpdesk.triage.domain import TriageConfig
from helpdesk.triage.infrastructure import (
    InMemoryHelpdeskStorage,
    SQLAlchemyHelpdeskStorage,
    TriageDispatcher,
    get_llm_provider,
    seed_knowledge_base,
)
from helpdesk.triage.interfaces import (
    tickets_router, agent_router, kb_router, config_router, dashboard_router
)

logger = get_logger(__name__)


async def build_storage(app_settings: Settings) -> IHelpdeskStorage:
    """Create the configured storage backend with its config defaults."""
    default_config = TriageConfig(
        auto_close_enabled=app_settings.default_auto_close_enabled,
        confidence_threshold=app_settings.default_confidence_threshold,
        sla_hours=app_settings.default_sla_hours,
    )

    if app_settings.storage_backend == "database":
        logger.info("Initializing database")
        init_database(app_settings.database_url)
        # Development convenience; deployments should run migrations
        await create_tables()
        return SQLAlchemyHelpdeskStorage(get_session_maker(), default_config)

    return InMemoryHelpdeskStorage(default_config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Create storage (and database tables when using the database backend)
    3. Materialize the triage config and seed the knowledge base
    4. Build the triage pipeline and start the dispatcher workers

    SHUTDOWN:
    1. Drain and stop the dispatcher
    2. Close database connections
    """
    app_settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(app_settings.log_level, app_settings.environment)
    logger.info("Starting Helpdesk Triage", extra={
        "version": app_settings.app_version,
        "environment": app_settings.environment,
        "storage_backend": app_settings.storage_backend
    })

    storage = await build_storage(app_settings)
    await storage.get_config()
    if app_settings.seed_knowledge_base:
        await seed_knowledge_base(storage)

    audit_writer = AuditLogWriter(storage)
    orchestrator = TriageOrchestrator(
        storage,
        get_llm_provider(app_settings.llm_provider),
        audit_writer=audit_writer
    )
    dispatcher = TriageDispatcher(
        orchestrator.triage,
        workers=app_settings.triage_workers,
        queue_size=app_settings.triage_queue_size
    )
    await dispatcher.start()

    app.state.storage = storage
    app.state.audit_writer = audit_writer
    app.state.orchestrator = orchestrator
    app.state.dispatcher = dispatcher

    logger.info("Helpdesk Triage started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk Triage")

    await dispatcher.stop(drain=True)
    if app_settings.storage_backend == "database":
        await close_database()

    logger.info("Helpdesk Triage shutdown complete")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application."""
    app_settings = app_settings or default_settings

    app = FastAPI(
        title="Helpdesk Triage API",
        description="Support tickets with automated classification, KB retrieval and drafted replies.",
        version=app_settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = app_settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    # Added last so it runs first and LoggingMiddleware sees the ID
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(tickets_router)
    app.include_router(agent_router)
    app.include_router(kb_router)
    app.include_router(config_router)
    app.include_router(dashboard_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        dispatcher = getattr(request.app.state, "dispatcher", None)
        checks = {
            "storage": app_settings.storage_backend,
            "triage_dispatcher": "running" if dispatcher and dispatcher.is_running else "stopped",
            "triage_pending": dispatcher.pending if dispatcher else 0,
        }
        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "checks": checks
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.environment == "development",
        log_level="info"
    )
