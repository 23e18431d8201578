"""FastAPI application entry point."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitebuilder.api.errors import register_error_handlers
from sitebuilder.api.routes import preview, projects, publish
from sitebuilder.config import get_settings
from sitebuilder.database import async_session_maker, engine
from sitebuilder.logging_config import configure_logging
from sitebuilder.services.container import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    configure_logging(settings)
    services = build_services(settings, async_session_maker)
    app.state.services = services
    sweepers = [
        asyncio.create_task(services.limiter.run_sweeper()),
        asyncio.create_task(services.pending_saves.run_sweeper()),
    ]
    logger.info(f"{settings.app_name} started ({settings.environment})")
    yield
    # Shutdown
    for task in sweepers:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await engine.dispose()


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Store, validate and compose AI-generated website revisions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
app.include_router(preview.router, prefix="/api/preview", tags=["preview"])
app.include_router(publish.router, prefix="/api", tags=["publish"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
    }
