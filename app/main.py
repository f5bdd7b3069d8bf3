"""FastAPI entrypoint for the knowledge-base search service."""

from fastapi import FastAPI

from app.api.routes_health import router as health_router
from app.api.routes_search import router as search_router
from app.config import get_settings
from app.logging_config import configure_logging


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    application = FastAPI(
        title="Knowledge Base Search",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    application.include_router(health_router)
    application.include_router(search_router)

    application.state.settings = settings
    return application


app = create_app()
