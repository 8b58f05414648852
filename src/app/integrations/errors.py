"""Typed error taxonomy for the publishing layer.

Every error carries a stable ``error_code`` (surfaced in PublishResult and
HTTP error bodies) and a ``retryable`` hint:

- False: never retry (user must fix config/credentials/schema)
- True: safe to retry automatically (idempotent reads, 429/5xx)
- "with_caution": a retry may duplicate remote state (timed-out create)
"""

from __future__ import annotations

from typing import Any, Literal

Retryable = bool | Literal["with_caution"]


class IntegrationError(Exception):
    """Base class for all publishing-layer errors."""

    error_code: str = "INTEGRATION_ERROR"
    retryable: Retryable = False

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "reason": type(self).__name__,
            "retryable": self.retryable,
        }


# ── Configuration ───────────────────────────────────────────────────────────


class ConfigValidationError(IntegrationError):
    """Connection configuration failed validation. Never retried."""

    error_code = "CONFIG_INVALID"

    def __init__(self, errors: dict[str, str], message: str | None = None) -> None:
        self.errors = dict(errors)
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in self.errors.items()) or "Invalid configuration"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class CredentialsUnreadableError(IntegrationError):
    """Stored credentials cannot be decrypted with the current key.

    The integration needs its credentials re-entered (or the old key
    restored) before any platform call can be made.
    """

    error_code = "CREDENTIALS_UNREADABLE"


class UnknownProviderError(IntegrationError):
    """No provider is registered for the requested platform."""

    error_code = "UNKNOWN_PROVIDER"

    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(f"No provider registered for platform '{platform}'")


# ── Transport / Platform ────────────────────────────────────────────────────


class IntegrationConnectionError(IntegrationError):
    """Network failure or credentials rejected while reaching the platform."""

    error_code = "CONNECTION_ERROR"
    retryable: Retryable = True


class PlatformTimeoutError(IntegrationConnectionError):
    """The platform did not answer within the configured timeout."""

    error_code = "TIMEOUT"


class PlatformAPIError(IntegrationError):
    """The platform answered with a non-2xx status."""

    error_code = "PLATFORM_API_ERROR"

    def __init__(self, status_code: int, body: Any = None, message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        if message is None:
            message = f"Platform API returned HTTP {status_code}"
            detail = _extract_detail(body)
            if detail:
                message = f"{message}: {detail}"
        super().__init__(message)
        self.retryable = status_code == 429 or status_code >= 500


class PlatformNotFoundError(PlatformAPIError):
    """HTTP 404. Treated as data by the drift checker."""

    error_code = "NOT_FOUND"

    def __init__(self, body: Any = None, message: str | None = None) -> None:
        super().__init__(404, body, message)


class PlatformAuthError(PlatformAPIError):
    """HTTP 401/403. Credentials must be rotated."""

    error_code = "UNAUTHORIZED"


# ── Publish protocol ────────────────────────────────────────────────────────


class SchemaMismatchError(IntegrationError):
    """Mapped fields do not fit the live collection schema.

    Only fatal when no title-equivalent field can be mapped.
    """

    error_code = "SCHEMA_MISMATCH"

    def __init__(self, message: str, available_fields: list[str] | None = None) -> None:
        self.available_fields = available_fields or []
        super().__init__(message)


class AmbiguousSiteError(IntegrationError):
    """Site auto-detection could not pick exactly one site."""

    error_code = "AMBIGUOUS_SITE"

    def __init__(self, message: str, site_ids: list[str] | None = None) -> None:
        self.site_ids = site_ids or []
        super().__init__(message)


class ItemCreateOutcomeUnknownError(IntegrationError):
    """Item creation timed out; the item may or may not exist remotely."""

    error_code = "CREATE_OUTCOME_UNKNOWN"
    retryable: Retryable = "with_caution"


class PartialPublishError(IntegrationError):
    """Item was created but the site publish failed (orphaned draft)."""

    error_code = "PARTIAL_PUBLISH"
    retryable: Retryable = True

    def __init__(self, item_id: str, message: str) -> None:
        self.item_id = item_id
        super().__init__(message)


# ── Service level ───────────────────────────────────────────────────────────


class IntegrationNotFoundError(IntegrationError):
    error_code = "INTEGRATION_NOT_FOUND"


class PostNotFoundError(IntegrationError):
    error_code = "POST_NOT_FOUND"


class IntegrationInactiveError(IntegrationError):
    error_code = "INTEGRATION_INACTIVE"


class PublishInProgressError(IntegrationError):
    """Another publish for the same (post, integration) is running in this process."""

    error_code = "PUBLISH_IN_PROGRESS"
    retryable: Retryable = True


class NotPublishedError(IntegrationError):
    """No remote item is recorded for the (post, integration) pair."""

    error_code = "NOT_PUBLISHED"


def _extract_detail(body: Any) -> str | None:
    if isinstance(body, dict):
        for key in ("message", "msg", "error", "errors", "code"):
            if body.get(key):
                return str(body[key])
        return None
    if isinstance(body, str) and body:
        return body[:200]
    return None
