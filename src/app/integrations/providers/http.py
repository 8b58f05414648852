"""Shared async REST plumbing for platform clients.

PlatformRestClient opens one httpx.AsyncClient per call with the timeout
for the operation type and converts every failure into the typed errors
of src.app.integrations.errors:
- non-2xx -> PlatformAPIError (404 -> PlatformNotFoundError,
  401/403 -> PlatformAuthError)
- connection failures -> IntegrationConnectionError
- timeouts -> PlatformTimeoutError

No retry is applied here. Callers decide: reads go through the provider's
with_retry(), item creation is never retried.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.app.core.monitoring import track_platform_call
from src.app.integrations.errors import (
    IntegrationConnectionError,
    PlatformAPIError,
    PlatformAuthError,
    PlatformNotFoundError,
    PlatformTimeoutError,
)

logger = structlog.get_logger(__name__)


def error_for_response(response: httpx.Response) -> PlatformAPIError:
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text
    if response.status_code == 404:
        return PlatformNotFoundError(body)
    if response.status_code in (401, 403):
        return PlatformAuthError(response.status_code, body)
    return PlatformAPIError(response.status_code, body)


class PlatformRestClient:
    """Base class for a platform's REST client.

    Args:
        platform: Label used in metrics and log events.
        base_url: API root all request paths are relative to.
        headers: Default headers (auth, content type).
        auth: Optional httpx auth (e.g. basic auth for WordPress).
        read_timeout: Seconds for GET requests.
        mutate_timeout: Seconds for POST/PUT/PATCH/DELETE requests.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    # Timeouts per operation type
    TIMEOUT_MUTATE = 15.0  # create/update/delete/publish
    TIMEOUT_READ = 10.0    # get/list

    def __init__(
        self,
        platform: str,
        base_url: str,
        headers: dict[str, str],
        auth: httpx.Auth | tuple[str, str] | None = None,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._platform = platform
        self._base_url = base_url.rstrip("/")
        self._headers = headers
        self._auth = auth
        self._read_timeout = read_timeout or self.TIMEOUT_READ
        self._mutate_timeout = mutate_timeout or self.TIMEOUT_MUTATE
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            auth=self._auth,
            timeout=timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        timeout = self._read_timeout if method == "GET" else self._mutate_timeout
        async with track_platform_call(self._platform, operation) as tracker:
            try:
                async with self._client(timeout) as client:
                    response = await client.request(method, path, json=json, params=params)
            except httpx.TimeoutException as exc:
                raise PlatformTimeoutError(
                    f"{self._platform} {operation} timed out after {timeout}s"
                ) from exc
            except httpx.TransportError as exc:
                raise IntegrationConnectionError(f"Could not reach {self._platform}: {exc}") from exc

            tracker["status_code"] = response.status_code
            if response.is_error:
                error = error_for_response(response)
                logger.warning(
                    "platform.request_failed",
                    platform=self._platform,
                    operation=operation,
                    status_code=response.status_code,
                    error=error.message,
                )
                raise error

            if response.status_code == 204 or not response.content:
                return {}
            return response.json()
