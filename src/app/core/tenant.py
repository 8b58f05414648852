"""Tenant context propagation via Python contextvars.

The TenantContext is set by middleware at the start of each request and is
accessible anywhere in the call stack via get_current_tenant(). Integration
lookups, publish logs and stored field mappings are all scoped to this
tenant.
"""

from __future__ import annotations

import contextvars
import uuid
from dataclasses import dataclass

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger(__name__)

# ── Tenant Context ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant context for the current request."""

    tenant_id: str


_tenant_context: contextvars.ContextVar[TenantContext] = contextvars.ContextVar("tenant_context")


def get_current_tenant() -> TenantContext:
    """Get the tenant context for the current request.

    Raises RuntimeError if no tenant context has been set (i.e., the call
    is not within a tenant-scoped request).
    """
    try:
        return _tenant_context.get()
    except LookupError:
        raise RuntimeError("No tenant context set -- request is not tenant-scoped")


def set_tenant_context(ctx: TenantContext) -> contextvars.Token[TenantContext]:
    """Set the tenant context for the current request. Returns a token for reset."""
    return _tenant_context.set(ctx)


def reset_tenant_context(token: contextvars.Token[TenantContext]) -> None:
    """Restore the tenant context that was active before set_tenant_context()."""
    _tenant_context.reset(token)


# ── Paths that skip tenant resolution ───────────────────────────────────────

SKIP_TENANT_PATHS = (
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/v1/health",
    "/api/v1/providers",
)


# ── Tenant Middleware ───────────────────────────────────────────────────────


class TenantMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves tenant from X-Tenant-ID header and sets context.

    Tenant provisioning and authentication live outside this service; the
    header is trusted as set by the upstream gateway. It must be a UUID.
    Paths in SKIP_TENANT_PATHS are excluded from tenant resolution.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(skip) for skip in SKIP_TENANT_PATHS):
            return await call_next(request)

        tenant_id = request.headers.get("X-Tenant-ID")
        if not tenant_id:
            return JSONResponse(status_code=400, content={"detail": "Missing X-Tenant-ID header"})

        try:
            tenant_id = str(uuid.UUID(tenant_id))
        except ValueError:
            logger.warning("tenant.invalid_header", value=tenant_id, path=path)
            return JSONResponse(status_code=400, content={"detail": "X-Tenant-ID must be a UUID"})

        token = set_tenant_context(TenantContext(tenant_id=tenant_id))
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(token)
