"""FastAPI dependency injection for tenant context and app.state services.

The publishing service and provider registry are built in the lifespan and
stored on app.state; these helpers fetch them and answer 503 when startup
did not initialize them.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.app.core.tenant import TenantContext, get_current_tenant
from src.app.integrations.registry import ProviderRegistry
from src.app.integrations.service import PublishingService


async def get_tenant() -> TenantContext:
    """Get the current tenant context (set by TenantMiddleware)."""
    return get_current_tenant()


def get_publishing_service(request: Request) -> PublishingService:
    """Retrieve PublishingService from app.state, 503 if not available."""
    service = getattr(request.app.state, "publishing_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Publishing service not initialized",
        )
    return service


def get_provider_registry(request: Request) -> ProviderRegistry:
    """Retrieve ProviderRegistry from app.state, 503 if not available."""
    registry = getattr(request.app.state, "provider_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provider registry not initialized",
        )
    return registry
