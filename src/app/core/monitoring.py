"""Prometheus metrics, Sentry integration, and platform call tracking.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- init_sentry(): Initialize Sentry with tenant-aware before_send callback
- track_platform_call(): Context manager for outbound CMS API call metrics
- record_publish_outcome(): Counter for publish attempts by terminal state
- get_metrics_response(): Response for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Platform Metrics ─────────────────────────────────────────────────────────

platform_requests_total = Counter(
    "platform_requests_total",
    "Total outbound CMS platform API requests",
    ["platform", "operation", "status"],
)

platform_request_duration_seconds = Histogram(
    "platform_request_duration_seconds",
    "Outbound CMS platform API request duration in seconds",
    ["platform", "operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)

publish_attempts_total = Counter(
    "publish_attempts_total",
    "Publish attempts by platform and outcome",
    ["platform", "outcome"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    The route template is used as the endpoint label when one matched, so
    integration and post ids do not explode label cardinality.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Platform Metrics Helpers ────────────────────────────────────────────────


@asynccontextmanager
async def track_platform_call(
    platform: str,
    operation: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that tracks an outbound platform API call.

    Usage:
        async with track_platform_call("webflow", "create_item") as tracker:
            response = await client.post(...)
            tracker["status_code"] = response.status_code

    Records duration and a success/error count. An exception escaping the
    block counts as an error and is re-raised.
    """
    tracker: dict[str, Any] = {"status_code": None}
    start_time = time.perf_counter()
    status = "success"

    try:
        yield tracker
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time

        platform_requests_total.labels(
            platform=platform,
            operation=operation,
            status=status,
        ).inc()

        platform_request_duration_seconds.labels(
            platform=platform,
            operation=operation,
        ).observe(duration)


def record_publish_outcome(platform: str, outcome: str) -> None:
    """Count a finished publish attempt (success, partial, failed, rejected)."""
    publish_attempts_total.labels(platform=platform, outcome=outcome).inc()


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with tenant-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Add tenant context to Sentry events."""
        try:
            from src.app.core.tenant import get_current_tenant

            ctx = get_current_tenant()
            event.setdefault("tags", {})["tenant_id"] = ctx.tenant_id
        except RuntimeError:
            pass
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
