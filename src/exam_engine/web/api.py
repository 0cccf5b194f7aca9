"""FastAPI application factory.

Main entry point for the Exam Attempt Engine Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exam_engine.core.engine import AttemptEngine
from exam_engine.db.database import init_db
from exam_engine.web.dependencies import get_engine, set_engine
from exam_engine.web.errors import register_error_handlers
from exam_engine.web.routes import (
    health_router,
    attempts_router,
    students_router,
    series_router,
    integrity_router,
    questions_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    # Startup
    engine = get_engine()
    db_path = init_db(engine.config.storage.db_path)
    logger.info("api_startup", db_path=str(db_path.absolute()))
    yield
    # Shutdown (nothing to do for now)


def create_app(engine: AttemptEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Engine to serve (the shared default engine when None)

    Returns:
        Configured FastAPI app instance
    """
    if engine is not None:
        set_engine(engine)

    app = FastAPI(
        title="Exam Attempt Engine API",
        description="Test attempts, grading, integrity monitoring and analytics",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(attempts_router)
    app.include_router(students_router)
    app.include_router(series_router)
    app.include_router(integrity_router)
    app.include_router(questions_router)

    return app


# Default app instance for uvicorn
app = create_app()
