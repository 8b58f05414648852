"""FastAPI application factory.

Creates the app with tenant middleware, logging middleware, metrics middleware,
CORS, Sentry, the integration error handler, lifespan wiring of the
publishing service, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.app.config import get_settings
from src.app.core.database import close_db, get_session, init_db
from src.app.core.encryption import CredentialCipher, CredentialEncryptionError
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.app.core.tenant import TenantMiddleware
from src.app.api.errors import integration_error_handler
from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.v1.router import router as v1_router
from src.app.integrations.errors import IntegrationError
from src.app.integrations.mapping import FieldMappingResolver
from src.app.integrations.registry import create_default_registry
from src.app.integrations.repository import (
    BlogPostRepository,
    IntegrationRepository,
    PublishLogRepository,
)
from src.app.integrations.service import PublishingService


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and the publishing service; close DB on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # A missing or malformed encryption key leaves the service unset; the
    # publishing routes then answer 503 and /health/ready reports it.
    try:
        cipher = CredentialCipher(settings.INTEGRATION_ENCRYPTION_KEY)
    except CredentialEncryptionError:
        log.error("publishing.cipher_init_failed", exc_info=True)
        app.state.provider_registry = None
        app.state.publishing_service = None
    else:
        integration_repo = IntegrationRepository(session_factory=get_session)
        resolver = FieldMappingResolver(store=integration_repo)
        registry = create_default_registry(settings, resolver=resolver)

        app.state.provider_registry = registry
        app.state.publishing_service = PublishingService(
            registry=registry,
            integrations=integration_repo,
            publish_logs=PublishLogRepository(session_factory=get_session),
            posts=BlogPostRepository(session_factory=get_session),
            cipher=cipher,
        )
        log.info("publishing.service_initialized", providers=registry.platforms())

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Content Publisher API",
        version="0.1.0",
        description="Multi-tenant publishing of generated blog posts to Webflow, WordPress and Shopify",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- resolves tenant context from X-Tenant-ID)
    app.add_middleware(TenantMiddleware)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(IntegrationError, integration_error_handler)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
