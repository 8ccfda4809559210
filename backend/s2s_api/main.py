"""
Summit2Shore API - Main Application Entry Point
===============================================

Builds the FastAPI application: components are constructed once from the
settings and stored on ``app.state`` where request dependencies find them.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from s2s_api.api.router import api_router
from s2s_api.core.config import Settings, get_settings
from s2s_api.core.database import Database
from s2s_api.core.exceptions import register_exception_handlers
from s2s_api.core.logging import configure_logging
from s2s_api.core.security import PasswordHasher, TokenService
from s2s_api.middleware.access_log import AccessLogMiddleware
from s2s_api.middleware.prometheus import PrometheusMiddleware
from s2s_api.middleware.usage_tracking import UsageTrackingMiddleware
from s2s_api.services.account_mailer import AccountMailer
from s2s_api.services.api_key_service import ApiKeyService
from s2s_api.services.rate_limiter import RateLimiter
from s2s_api.services.usage_logger import UsageLogger


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    - Startup: create tables outside production (migrations own production)
    - Shutdown: dispose the connection pool
    """
    settings: Settings = app.state.settings
    database: Database = app.state.database

    if settings.uses_default_secret:
        logger.warning("JWT_SECRET is using the insecure development default")

    if not settings.is_production:
        try:
            await database.create_all()
        except Exception as e:
            logger.warning(f"Could not create database tables: {e} - continuing without database")

    yield

    await database.dispose()


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Configuration to build every component from. Defaults to
            the process settings read from the environment.

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Summit2Shore environmental data API",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    database = Database(settings)
    hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)

    app.state.settings = settings
    app.state.database = database
    app.state.hasher = hasher
    app.state.tokens = TokenService(settings)
    app.state.api_keys = ApiKeyService(settings, hasher)
    app.state.rate_limiter = RateLimiter(database, settings)
    app.state.usage_logger = UsageLogger(database)
    app.state.account_mailer = AccountMailer(settings)

    register_exception_handlers(app)

    # ---------------------------------------------------------------------------
    # Middleware (order matters - first added = last executed)
    # ---------------------------------------------------------------------------

    app.add_middleware(UsageTrackingMiddleware)
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Request-ID"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
            "X-Request-ID",
        ],
    )

    app.include_router(api_router)

    return app
