import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from prepgen.api.v1.curriculum import curriculum_router
from prepgen.core.config import settings
from prepgen.core.exceptions import (
    CurriculumNotFound,
    PersistenceConflict,
    PersistenceError,
    PipelineError,
    global_exception_handler,
    http_exception_handler,
    not_found_handler,
    persistence_conflict_handler,
    persistence_error_handler,
    pipeline_exception_handler,
)
from prepgen.core.llm import build_gateway
from prepgen.core.logger import setup_logger
from prepgen.services.persistence import build_repository
from prepgen.services.pipeline.orchestrator import CurriculumOrchestrator

# Setup logger with fresh log file on startup
setup_logger(
    log_level=logging.DEBUG if settings.DEBUG_MODE else logging.INFO,
    clear_log=True,
    use_json=settings.LOG_JSON,
)
logger = logging.getLogger(__name__)


def create_app(orchestrator: Optional[CurriculumOrchestrator] = None) -> FastAPI:
    """
    Build the application.

    Without an injected orchestrator the lifespan wires one from settings:
    provider gateway, repository, orchestrator.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup: Interview Curriculum Generator")
        owned = orchestrator is None
        if owned:
            app.state.orchestrator = CurriculumOrchestrator.from_settings(
                build_gateway(settings),
                build_repository(settings.DATABASE_URL),
                settings,
            )
        else:
            app.state.orchestrator = orchestrator
        yield
        await app.state.orchestrator.shutdown()
        if owned:
            await app.state.orchestrator.repository.close()
        logger.info("Application shutdown")

    app = FastAPI(
        title="Interview Curriculum Generator",
        description="Generates multi-round interview preparation curricula from a job reference.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(PipelineError, pipeline_exception_handler)
    app.add_exception_handler(PersistenceConflict, persistence_conflict_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)
    app.add_exception_handler(CurriculumNotFound, not_found_handler)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for simplicity in development
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(curriculum_router, prefix="/api/v1", tags=["curriculum"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
