"""
FastAPI application for the passwordless sign-in flow.

Run with ``uvicorn --factory api.main:create_app``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from api.handlers import (
    auth_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from auth.config import AuthSettings, get_settings
from auth.dependencies import build_provider
from auth.exceptions import AuthException
from auth.interfaces.verification_provider import VerificationProvider

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: AuthSettings | None = None,
    provider: VerificationProvider | None = None,
) -> FastAPI:
    """Build the application; settings are loaded and validated here so bad config fails at startup."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting passwordless auth service (provider=%s)", settings.AUTH_PROVIDER)
        yield
        logger.info("Shutting down passwordless auth service")

    app = FastAPI(
        title="Passwordless Auth API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.provider = provider if provider is not None else build_provider(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthException, auth_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(auth_router, prefix="/api/auth", tags=["auth"])

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app
