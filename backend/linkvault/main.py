"""LinkVault - personal bookmark manager API."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from linkvault.api import auth
from linkvault.api.errors import register_exception_handlers
from linkvault.api.middleware import CorrelationIdMiddleware, SecurityHeadersMiddleware
from linkvault.api.ratelimit import limiter
from linkvault.config import get_settings
from linkvault.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    from linkvault.database import Base, engine

    # Import all models so they're registered with Base
    from linkvault import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready")

    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Save, organize and find your bookmarks",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Outermost, so every log line of a request carries its id.
    app.add_middleware(CorrelationIdMiddleware)

    app.state.limiter = limiter
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "app": settings.app_name}

    app.include_router(auth.router)

    return app


app = create_app()
