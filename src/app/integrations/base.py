"""Provider contract -- the interface every content platform adapter implements.

BaseIntegrationProvider owns the shared behavior (config validation, the
connect handshake, the publish/update pipeline, retry, drift comparison)
and leaves the platform calls to abstract hooks. The publish pipeline is:

    validate ids -> resolve target -> fetch schema -> resolve mappings
    -> require title -> build payload -> do_publish()

publish() and update() never raise: every failure becomes a PublishResult
with error_code PUBLISH_ERROR / UPDATE_ERROR and the typed reason in
metadata["reason"].
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, TypeVar

import structlog
from pydantic import SecretStr

from src.app.integrations.connection import parse_connection_config
from src.app.integrations.errors import ConfigValidationError, IntegrationError
from src.app.integrations.mapping import (
    FieldMappingResolver,
    MappingProfile,
    blog_value,
    build_payload,
    require_title,
)
from src.app.integrations.retry import DEFAULT_POLICY, BackoffPolicy, with_retry
from src.app.integrations.schemas import (
    BlogField,
    BlogPost,
    Collection,
    ConfigField,
    ConnectionResult,
    HealthCheck,
    HealthStatus,
    LocalSnapshot,
    MappingResolution,
    Platform,
    PublishRequest,
    PublishResult,
    PublishState,
    RemoteItemStatus,
    RemoteSnapshot,
    Site,
    SyncStatus,
    ValidationResult,
)
from src.app.integrations.sync import check_drift

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PublishTarget:
    """Where an item goes: the site (when the platform has one) and collection."""

    collection_id: str
    site_id: str | None = None
    site_subdomain: str | None = None


@dataclass(frozen=True)
class PreparedItem:
    """Everything do_publish/do_update need, produced by the shared pipeline."""

    target: PublishTarget
    collection: Collection
    fields: dict[str, Any]
    resolution: MappingResolution
    slug: str | None = None


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _lookup(raw: dict[str, Any], key: str) -> Any:
    value = raw.get(key)
    if value is None:
        value = raw.get(_camel(key))
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    return value


class BaseIntegrationProvider(ABC):
    """Abstract interface for content platform operations.

    Subclasses set ``platform``, ``display_name``, ``description`` and
    ``mapping_profile`` and implement the abstract hooks.

    Methods:
        connect: Validate config, verify credentials, best-effort site list.
        disconnect: Log the disconnect (credentials are cleared by the caller).
        test_connection: Health check for an existing config.
        validate_config: Declarative check of the raw config mapping.
        publish / update: Shared pipeline, never raises.
        publish_site: Make previously created items live (Webflow only).
        check_sync: Compare a local snapshot with the remote item.
        with_retry: Run an idempotent read under the retry policy.

    Args:
        resolver: Field mapping resolver (defaults to one without a store).
        retry_policy: Backoff policy for idempotent reads.
        sleep: Awaitable sleep used between retries (injectable for tests).
    """

    platform: ClassVar[Platform]
    display_name: ClassVar[str]
    description: ClassVar[str] = ""
    mapping_profile: ClassVar[MappingProfile]

    def __init__(
        self,
        resolver: FieldMappingResolver | None = None,
        retry_policy: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._resolver = resolver or FieldMappingResolver()
        self._retry_policy = retry_policy or DEFAULT_POLICY
        self._sleep = sleep

    # ── Config ──────────────────────────────────────────────────────────────

    def parse_config(self, raw: Any) -> Any:
        """Typed ConnectionConfig variant for this platform."""
        if hasattr(raw, "plain_dict"):
            if getattr(raw, "platform", None) == self.platform.value:
                return raw
            raw = raw.plain_dict()
        return parse_connection_config(self.platform.value, raw)

    def validate_config(self, config: Any) -> ValidationResult:
        """Check every declared config field; all violations are accumulated."""
        raw = config.plain_dict() if hasattr(config, "plain_dict") else dict(config or {})
        errors: dict[str, str] = {}

        for field in self.get_required_config_fields():
            value = _lookup(raw, field.key)
            if value is None or (isinstance(value, str) and not value.strip()):
                if field.required:
                    errors[field.key] = f"{field.label} is required"
                continue

            rules = field.validation
            if rules is None or not isinstance(value, str):
                continue
            if rules.min_length is not None and len(value) < rules.min_length:
                errors[field.key] = f"{field.label} must be at least {rules.min_length} characters"
            elif rules.max_length is not None and len(value) > rules.max_length:
                errors[field.key] = f"{field.label} must be no more than {rules.max_length} characters"
            elif rules.pattern and not re.search(rules.pattern, value):
                errors[field.key] = f"{field.label} format is invalid"

        return ValidationResult(valid=not errors, errors=errors)

    # ── Connection lifecycle ────────────────────────────────────────────────

    async def connect(self, config: Any) -> ConnectionResult:
        validation = self.validate_config(config)
        if not validation.valid:
            return ConnectionResult(
                success=False,
                error="Configuration is invalid",
                metadata={"errors": validation.errors},
            )

        try:
            typed = self.parse_config(config)
            if not await self.validate_connection(typed):
                return ConnectionResult(success=False, error=f"Could not connect to {self.display_name}")
        except IntegrationError as exc:
            logger.warning("provider.connect_failed", provider=self.platform.value, error=exc.message)
            return ConnectionResult(success=False, error=exc.message, metadata=exc.to_dict())

        sites: list[Site] = []
        try:
            sites = await self.get_sites(typed)
        except IntegrationError as exc:
            logger.warning("provider.site_listing_failed", provider=self.platform.value, error=exc.message)

        logger.info("provider.connected", provider=self.platform.value, site_count=len(sites))
        return ConnectionResult(
            success=True,
            message=f"Connected to {self.display_name}",
            metadata={
                "connected_at": datetime.now(timezone.utc).isoformat(),
                "provider": self.platform.value,
                "sites": [s.model_dump() for s in sites],
            },
        )

    async def disconnect(self, integration_id: str) -> None:
        logger.info("provider.disconnected", provider=self.platform.value, integration_id=integration_id)

    async def test_connection(self, config: Any) -> HealthCheck:
        try:
            ok = await self.validate_connection(self.parse_config(config))
        except IntegrationError as exc:
            return HealthCheck(status=HealthStatus.ERROR, message=exc.message, details=exc.to_dict())
        if not ok:
            return HealthCheck(status=HealthStatus.ERROR, message="Connection validation failed")
        return HealthCheck(status=HealthStatus.HEALTHY, message="Connection successful")

    # ── Publish pipeline ────────────────────────────────────────────────────

    async def publish(
        self,
        config: Any,
        request: PublishRequest,
        post: BlogPost,
        tenant_id: str,
    ) -> PublishResult:
        if not request.post_id or not request.integration_id:
            return PublishResult(
                success=False,
                error="Post ID and Integration ID are required",
                error_code="PUBLISH_ERROR",
                state=PublishState.FAILED,
                metadata={"reason": "ValidationError"},
            )

        progress = {"state": PublishState.START}
        try:
            typed = self.parse_config(config)
            prepared = await self._prepare(typed, request, post, tenant_id, progress)
            return await self.do_publish(typed, request, post, prepared)
        except Exception as exc:
            return self._failure(exc, "PUBLISH_ERROR", progress["state"], request)

    async def update(
        self,
        config: Any,
        request: PublishRequest,
        post: BlogPost,
        external_id: str,
        tenant_id: str,
    ) -> PublishResult:
        if not external_id or not request.post_id:
            return PublishResult(
                success=False,
                error="External ID and Post ID are required",
                error_code="UPDATE_ERROR",
                state=PublishState.FAILED,
                metadata={"reason": "ValidationError"},
            )

        progress = {"state": PublishState.START}
        try:
            typed = self.parse_config(config)
            prepared = await self._prepare(typed, request, post, tenant_id, progress)
            return await self.do_update(typed, request, post, external_id, prepared)
        except Exception as exc:
            return self._failure(exc, "UPDATE_ERROR", progress["state"], request)

    async def _prepare(
        self,
        config: Any,
        request: PublishRequest,
        post: BlogPost,
        tenant_id: str,
        progress: dict[str, PublishState],
    ) -> PreparedItem:
        """Run the shared steps, recording the last reached state in ``progress``."""
        self.log_state(request, PublishState.START)
        target = await self.resolve_target(config, request)

        collection = await self.with_retry(lambda: self.get_field_schema(config, target.collection_id))
        progress["state"] = PublishState.SCHEMA_FETCHED
        self.log_state(request, PublishState.SCHEMA_FETCHED, collection_id=collection.id)

        resolution = await self._resolver.resolve(
            tenant_id, self.mapping_profile, collection, request.field_mappings
        )
        require_title(resolution.mappings, collection)
        fields = build_payload(post, resolution.mappings, collection)
        progress["state"] = PublishState.FIELDS_RESOLVED
        self.log_state(
            request,
            PublishState.FIELDS_RESOLVED,
            tier=resolution.tier.value,
            fields=sorted(fields),
            dropped=[m.target_field for m in resolution.dropped],
        )
        return PreparedItem(target, collection, fields, resolution, slug=blog_value(post, BlogField.SLUG))

    def log_state(self, request: PublishRequest, state: PublishState, **details: Any) -> None:
        logger.info(
            "publish.state",
            provider=self.platform.value,
            state=state.value,
            post_id=request.post_id,
            integration_id=request.integration_id,
            **details,
        )

    def _failure(
        self,
        exc: Exception,
        error_code: str,
        state: PublishState,
        request: PublishRequest,
    ) -> PublishResult:
        if isinstance(exc, IntegrationError):
            metadata = exc.to_dict()
            metadata["detail_code"] = exc.error_code
            logger.warning(
                "publish.failed",
                provider=self.platform.value,
                post_id=request.post_id,
                state=state.value,
                reason=type(exc).__name__,
                error=exc.message,
            )
            message = exc.message
        else:
            metadata = {"reason": type(exc).__name__, "retryable": False}
            logger.exception(
                "publish.unexpected_error",
                provider=self.platform.value,
                post_id=request.post_id,
                state=state.value,
            )
            message = str(exc) or type(exc).__name__
        metadata["failed_at_state"] = state.value
        return PublishResult(
            success=False,
            error=message,
            error_code=error_code,
            state=PublishState.FAILED,
            metadata=metadata,
        )

    async def resolve_target(self, config: Any, request: PublishRequest) -> PublishTarget:
        """Collection from the request override, then from config."""
        collection_id = request.collection_id or getattr(config, "collection_id", None)
        if not collection_id:
            raise ConfigValidationError({"collection_id": "Collection ID is required"})
        return PublishTarget(
            collection_id=collection_id,
            site_id=request.site_id or getattr(config, "site_id", None),
        )

    async def publish_site(
        self,
        config: Any,
        item_ids: list[str],
        site_id: str | None = None,
    ) -> PublishResult:
        """Make created items live. Only two-phase platforms support this."""
        return PublishResult(
            success=False,
            error=f"Site publishing is not supported by {self.display_name}",
            error_code="NOT_SUPPORTED",
            state=PublishState.FAILED,
        )

    # ── Item state ──────────────────────────────────────────────────────────

    def _unsupported(self, action: str) -> PublishResult:
        return PublishResult(
            success=False,
            error=f"{action} is not supported by {self.display_name}",
            error_code="NOT_SUPPORTED",
            state=PublishState.FAILED,
        )

    async def unpublish(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
        site_id: str | None = None,
    ) -> PublishResult:
        """Take a live item offline without deleting it."""
        return self._unsupported("Unpublishing")

    async def archive(self, config: Any, external_id: str, collection_id: str | None = None) -> PublishResult:
        return self._unsupported("Archiving")

    async def restore(self, config: Any, external_id: str, collection_id: str | None = None) -> PublishResult:
        return self._unsupported("Restoring")

    # ── Drift ───────────────────────────────────────────────────────────────

    async def check_sync(
        self,
        config: Any,
        external_id: str,
        local: LocalSnapshot,
        collection_id: str | None = None,
    ) -> SyncStatus:
        typed = self.parse_config(config)
        return await check_drift(
            lambda: self.with_retry(lambda: self.get_remote_snapshot(typed, external_id, collection_id)),
            local,
            platform_label=self.display_name,
        )

    # ── Retry ───────────────────────────────────────────────────────────────

    async def with_retry(self, fn: Callable[[], Awaitable[T]], policy: BackoffPolicy | None = None) -> T:
        return await with_retry(fn, policy or self._retry_policy, sleep=self._sleep)

    # ── Abstract hooks ──────────────────────────────────────────────────────

    @abstractmethod
    async def validate_connection(self, config: Any) -> bool:
        """Verify credentials against the platform."""
        ...

    @abstractmethod
    async def get_sites(self, config: Any) -> list[Site]:
        ...

    @abstractmethod
    async def get_collections(self, config: Any, site_id: str) -> list[Collection]:
        ...

    @abstractmethod
    async def get_field_schema(self, config: Any, collection_id: str) -> Collection:
        """Collection with its live field list."""
        ...

    @abstractmethod
    async def do_publish(
        self,
        config: Any,
        request: PublishRequest,
        post: BlogPost,
        prepared: PreparedItem,
    ) -> PublishResult:
        ...

    @abstractmethod
    async def do_update(
        self,
        config: Any,
        request: PublishRequest,
        post: BlogPost,
        external_id: str,
        prepared: PreparedItem,
    ) -> PublishResult:
        ...

    @abstractmethod
    async def delete(self, config: Any, external_id: str, collection_id: str | None = None) -> bool:
        ...

    @abstractmethod
    async def get_status(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteItemStatus:
        ...

    @abstractmethod
    async def get_remote_snapshot(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteSnapshot:
        """Remote title/timestamps for drift checks. Raises PlatformNotFoundError on 404."""
        ...

    @abstractmethod
    def get_required_config_fields(self) -> list[ConfigField]:
        ...

    def describe(self) -> dict[str, Any]:
        return {
            "platform": self.platform.value,
            "display_name": self.display_name,
            "description": self.description,
            "config_fields": [f.model_dump() for f in self.get_required_config_fields()],
            "supports_site_publish": type(self).publish_site is not BaseIntegrationProvider.publish_site,
        }
