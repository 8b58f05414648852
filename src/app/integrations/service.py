"""Publishing service -- integrations, credentials and audited publishes.

PublishingService is the single entry point used by the HTTP layer. It
wires together:
- ProviderRegistry (platform adapters)
- IntegrationRepository / PublishLogRepository / BlogPostRepository
- CredentialCipher (Fernet encryption of sensitive config keys)

Publish flow for one (post, integration) pair:

    load integration (active) -> load post -> decrypt config
    -> advisory lock -> pending log -> provider.publish()
    -> terminal log (success | partial | failed) -> last_sync

Unpublish, archive and restore reuse the same audit trail and act on the
item recorded by the latest successful publish.

The lock is per process. A second attempt for the same pair while one is
running is rejected with PublishInProgressError instead of queueing.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog

from src.app.core.encryption import (
    SENSITIVE_FIELDS,
    CredentialCipher,
    CredentialEncryptionError,
    mask_credential,
    scrub_credentials,
)
from src.app.core.monitoring import record_publish_outcome
from src.app.integrations.base import BaseIntegrationProvider
from src.app.integrations.errors import (
    ConfigValidationError,
    CredentialsUnreadableError,
    IntegrationConnectionError,
    IntegrationError,
    IntegrationInactiveError,
    IntegrationNotFoundError,
    NotPublishedError,
    PostNotFoundError,
    PublishInProgressError,
)
from src.app.integrations.mapping import normalize_stored_mappings
from src.app.integrations.registry import ProviderRegistry
from src.app.integrations.repository import (
    BlogPostRepository,
    IntegrationRepository,
    PublishLogRepository,
)
from src.app.integrations.schemas import (
    BlogPost,
    Collection,
    FieldMapping,
    HealthCheck,
    HealthStatus,
    Integration,
    IntegrationStatus,
    LocalSnapshot,
    Platform,
    PublishLogEntry,
    PublishOptions,
    PublishRequest,
    PublishResult,
    PublishState,
    PublishStatus,
    Site,
    SyncStatus,
)

logger = structlog.get_logger(__name__)

ITEM_STATE_ACTIONS = ("unpublish", "archive", "restore")


def log_status_for(result: PublishResult) -> PublishStatus:
    """Terminal publish log status for a provider result."""
    if not result.success:
        return PublishStatus.FAILED
    if result.state == PublishState.ORPHANED_DRAFT:
        return PublishStatus.PARTIAL
    return PublishStatus.SUCCESS


def _response_metadata(result: PublishResult) -> dict[str, Any]:
    return {
        **result.metadata,
        "state": result.state.value,
        "published": result.published,
        "published_at": result.published_at.isoformat() if result.published_at else None,
    }


class PublishingService:
    """Tenant-scoped integration management and publishing.

    Args:
        registry: Provider registry built at startup.
        integrations: Integration repository.
        publish_logs: Append-only publish log repository.
        posts: Blog post repository.
        cipher: Credential cipher for the sensitive config keys.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        integrations: IntegrationRepository,
        publish_logs: PublishLogRepository,
        posts: BlogPostRepository,
        cipher: CredentialCipher,
    ) -> None:
        self._registry = registry
        self._integrations = integrations
        self._logs = publish_logs
        self._posts = posts
        self._cipher = cipher
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    # ── Lookups ─────────────────────────────────────────────────────────────

    async def get_integration(self, tenant_id: str, integration_id: str) -> Integration:
        integration = await self._integrations.get(tenant_id, integration_id)
        if integration is None:
            raise IntegrationNotFoundError(f"Integration {integration_id} not found")
        return integration

    async def list_integrations(self, tenant_id: str, platform: Platform | None = None) -> list[Integration]:
        return await self._integrations.list_by_tenant(tenant_id, platform)

    async def _active(self, tenant_id: str, integration_id: str) -> Integration:
        integration = await self.get_integration(tenant_id, integration_id)
        if integration.status != IntegrationStatus.ACTIVE:
            raise IntegrationInactiveError(
                f"Integration {integration_id} is {integration.status.value}; reconnect it before publishing"
            )
        return integration

    async def _post(self, tenant_id: str, post_id: str) -> BlogPost:
        post = await self._posts.get(tenant_id, post_id)
        if post is None:
            raise PostNotFoundError(f"Blog post {post_id} not found")
        return post

    def _provider(self, integration: Integration) -> BaseIntegrationProvider:
        return self._registry.get(integration.platform)

    def _config(self, integration: Integration) -> dict[str, Any]:
        try:
            return self._cipher.decrypt_connection_config(integration.config)
        except CredentialEncryptionError as exc:
            logger.error(
                "credentials.unreadable",
                tenant_id=integration.tenant_id,
                integration_id=integration.id,
                error=str(exc),
            )
            raise CredentialsUnreadableError(
                f"Stored credentials for integration {integration.id} cannot be decrypted; reconnect it"
            ) from exc

    def masked_config(self, integration: Integration) -> dict[str, Any]:
        """Config safe for API responses: sensitive values masked, internal keys dropped.

        Credentials that no longer decrypt are masked from their stored form so
        the integration can still be listed and reconnected.
        """
        try:
            config = self._config(integration)
        except CredentialsUnreadableError:
            config = integration.config
        return {
            key: mask_credential(value) if key in SENSITIVE_FIELDS and isinstance(value, str) else value
            for key, value in config.items()
            if key not in ("platform", "extras")
        }

    def _seal(self, provider: BaseIntegrationProvider, raw_config: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
        """Validate and parse a raw config. Returns the typed config and its encrypted form."""
        validation = provider.validate_config(raw_config)
        if not validation.valid:
            raise ConfigValidationError(validation.errors)
        typed = provider.parse_config(raw_config)
        return typed, self._cipher.encrypt_connection_config(typed.plain_dict())

    @asynccontextmanager
    async def _exclusive(self, post_id: str, integration_id: str) -> AsyncIterator[None]:
        key = (post_id, integration_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            raise PublishInProgressError(
                f"A publish for post {post_id} on integration {integration_id} is already running"
            )
        async with lock:
            try:
                yield
            finally:
                self._locks.pop(key, None)

    # ── Integrations ────────────────────────────────────────────────────────

    async def connect_integration(
        self,
        tenant_id: str,
        platform: Platform,
        name: str,
        raw_config: dict[str, Any],
        field_mappings: list[FieldMapping] | None = None,
    ) -> Integration:
        """Verify credentials and persist a new active integration.

        Raises:
            UnknownProviderError: No provider for ``platform``.
            ConfigValidationError: Config is missing or malformed.
            IntegrationConnectionError: Credentials were rejected.
        """
        provider = self._registry.get(platform)
        typed, sealed = self._seal(provider, raw_config)

        result = await provider.connect(typed)
        if not result.success:
            raise IntegrationConnectionError(
                result.error or f"Could not connect to {provider.display_name}",
                error_code=result.metadata.get("error_code"),
            )

        integration = await self._integrations.create(
            tenant_id,
            platform,
            name,
            sealed,
            field_mappings=field_mappings,
            status=IntegrationStatus.ACTIVE,
            health_status=HealthStatus.HEALTHY,
            metadata=result.metadata,
        )
        logger.info("integration.connected", tenant_id=tenant_id, integration_id=integration.id, platform=platform.value)
        return integration

    async def test_integration(self, tenant_id: str, integration_id: str) -> HealthCheck:
        integration = await self.get_integration(tenant_id, integration_id)
        health = await self._provider(integration).test_connection(self._config(integration))
        await self._integrations.update(
            tenant_id,
            integration_id,
            health_status=health.status,
            metadata={**integration.metadata, "last_health_check": health.last_checked.isoformat()},
        )
        logger.info(
            "integration.tested",
            tenant_id=tenant_id,
            integration_id=integration_id,
            health=health.status.value,
        )
        return health

    async def save_field_mappings(
        self,
        tenant_id: str,
        integration_id: str,
        mappings: list[FieldMapping] | list[dict[str, Any]] | dict[str, str],
    ) -> Integration:
        """Store the tenant's custom mapping (list or ``{blog_field: target}`` form)."""
        await self.get_integration(tenant_id, integration_id)
        normalized = normalize_stored_mappings(mappings)
        updated = await self._integrations.update(tenant_id, integration_id, field_mappings=normalized)
        logger.info(
            "integration.field_mappings_saved",
            tenant_id=tenant_id,
            integration_id=integration_id,
            count=len(normalized),
        )
        return updated

    async def rotate_credentials(
        self,
        tenant_id: str,
        integration_id: str,
        raw_config: dict[str, Any],
    ) -> Integration:
        """Merge new credentials over the stored config, verify and re-encrypt."""
        integration = await self.get_integration(tenant_id, integration_id)
        provider = self._provider(integration)
        merged = {**self._config(integration), **raw_config}
        typed, sealed = self._seal(provider, merged)

        try:
            await provider.validate_connection(typed)
        except IntegrationError:
            await self._integrations.update(tenant_id, integration_id, health_status=HealthStatus.ERROR)
            raise

        updated = await self._integrations.update(
            tenant_id,
            integration_id,
            config=sealed,
            status=IntegrationStatus.ACTIVE,
            health_status=HealthStatus.HEALTHY,
        )
        logger.info("integration.credentials_rotated", tenant_id=tenant_id, integration_id=integration_id)
        return updated

    async def disconnect_integration(self, tenant_id: str, integration_id: str) -> Integration:
        """Mark inactive and drop every stored credential. History is kept."""
        integration = await self.get_integration(tenant_id, integration_id)
        await self._provider(integration).disconnect(integration_id)
        scrubbed = scrub_credentials(integration.config)
        return await self._integrations.update(
            tenant_id,
            integration_id,
            config=scrubbed,
            status=IntegrationStatus.INACTIVE,
            health_status=HealthStatus.UNKNOWN,
        )

    # ── Schema Browsing ─────────────────────────────────────────────────────

    async def list_sites(self, tenant_id: str, integration_id: str) -> list[Site]:
        integration = await self._active(tenant_id, integration_id)
        provider = self._provider(integration)
        return await provider.get_sites(provider.parse_config(self._config(integration)))

    async def list_collections(self, tenant_id: str, integration_id: str, site_id: str) -> list[Collection]:
        integration = await self._active(tenant_id, integration_id)
        provider = self._provider(integration)
        return await provider.get_collections(provider.parse_config(self._config(integration)), site_id)

    async def get_field_schema(self, tenant_id: str, integration_id: str, collection_id: str) -> Collection:
        integration = await self._active(tenant_id, integration_id)
        provider = self._provider(integration)
        typed = provider.parse_config(self._config(integration))
        return await provider.with_retry(lambda: provider.get_field_schema(typed, collection_id))

    # ── Publishing ──────────────────────────────────────────────────────────

    async def publish(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str,
        options: PublishOptions | None = None,
    ) -> PublishResult:
        """Publish a post through an integration, with a pending and a terminal log."""
        options = options or PublishOptions()
        integration = await self._active(tenant_id, integration_id)
        post = await self._post(tenant_id, post_id)
        provider = self._provider(integration)
        request = PublishRequest(post_id=post_id, integration_id=integration_id, **options.model_dump())
        config = self._config(integration)

        async with self._exclusive(post_id, integration_id):
            return await self._audited(
                tenant_id,
                integration,
                post_id,
                "publish",
                options.model_dump(mode="json"),
                lambda: provider.publish(config, request, post, tenant_id),
            )

    async def update_published(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str,
        options: PublishOptions | None = None,
    ) -> PublishResult:
        """Push the current post content to the item created by the last publish."""
        options = options or PublishOptions()
        integration = await self._active(tenant_id, integration_id)
        post = await self._post(tenant_id, post_id)
        provider = self._provider(integration)
        config = self._config(integration)

        async with self._exclusive(post_id, integration_id):
            entry = await self._published_entry(tenant_id, post_id, integration_id)
            overrides = options.model_dump()
            overrides["collection_id"] = overrides["collection_id"] or entry.response_metadata.get("collection_id")
            overrides["site_id"] = overrides["site_id"] or entry.response_metadata.get("site_id")
            request = PublishRequest(post_id=post_id, integration_id=integration_id, **overrides)
            return await self._audited(
                tenant_id,
                integration,
                post_id,
                "update",
                {**options.model_dump(mode="json"), "external_id": entry.external_id},
                lambda: provider.update(config, request, post, entry.external_id, tenant_id),
            )

    async def publish_site(self, tenant_id: str, post_id: str, integration_id: str) -> PublishResult:
        """Recover an orphaned draft by re-running only the site publish."""
        integration = await self._active(tenant_id, integration_id)
        provider = self._provider(integration)
        config = self._config(integration)

        async with self._exclusive(post_id, integration_id):
            entry = await self._published_entry(tenant_id, post_id, integration_id)
            if entry.status != PublishStatus.PARTIAL:
                raise NotPublishedError(f"Post {post_id} has no orphaned draft to publish")

            site_id = entry.response_metadata.get("site_id")
            pending_url = entry.response_metadata.get("pending_url")

            async def recover() -> PublishResult:
                result = await provider.publish_site(config, [entry.external_id], site_id=site_id)
                if result.success:
                    result.item_id = entry.external_id
                    result.external_url = result.external_url or pending_url
                    result.metadata = {**entry.response_metadata, **result.metadata}
                    for key in ("recovery", "pending_url", "publish_error"):
                        result.metadata.pop(key, None)
                return result

            return await self._audited(
                tenant_id,
                integration,
                post_id,
                "publish_site",
                {"external_id": entry.external_id, "site_id": site_id},
                recover,
            )

    async def change_item_state(self, tenant_id: str, post_id: str, integration_id: str, action: str) -> PublishResult:
        """Unpublish, archive or restore the item created by the last publish."""
        if action not in ITEM_STATE_ACTIONS:
            raise ConfigValidationError({"action": f"Unknown item action '{action}'"})
        integration = await self._active(tenant_id, integration_id)
        provider = self._provider(integration)
        config = self._config(integration)

        async with self._exclusive(post_id, integration_id):
            entry = await self._published_entry(tenant_id, post_id, integration_id)
            collection_id = entry.response_metadata.get("collection_id")
            site_id = entry.response_metadata.get("site_id")

            async def apply() -> PublishResult:
                if action == "unpublish":
                    result = await provider.unpublish(config, entry.external_id, collection_id, site_id)
                elif action == "archive":
                    result = await provider.archive(config, entry.external_id, collection_id)
                else:
                    result = await provider.restore(config, entry.external_id, collection_id)
                # later updates and deletes look the item up from this entry
                result.item_id = result.item_id or entry.external_id
                result.metadata = {
                    **result.metadata,
                    "collection_id": result.metadata.get("collection_id") or collection_id,
                    "site_id": result.metadata.get("site_id") or site_id,
                }
                return result

            return await self._audited(
                tenant_id,
                integration,
                post_id,
                action,
                {"external_id": entry.external_id},
                apply,
            )

    async def delete_published(self, tenant_id: str, post_id: str, integration_id: str) -> dict[str, Any]:
        """Delete the remote item. A missing remote item counts as deleted."""
        integration = await self.get_integration(tenant_id, integration_id)
        provider = self._provider(integration)

        async with self._exclusive(post_id, integration_id):
            entry = await self._published_entry(tenant_id, post_id, integration_id)
            collection_id = entry.response_metadata.get("collection_id")
            existed = await provider.delete(self._config(integration), entry.external_id, collection_id)
            await self._logs.append(
                tenant_id,
                post_id,
                integration_id,
                attempt=await self._logs.next_attempt(tenant_id, post_id, integration_id),
                status=PublishStatus.SUCCESS,
                operation="delete",
                external_id=entry.external_id,
                response_metadata={"collection_id": collection_id, "existed": existed},
            )
        logger.info(
            "publish.deleted",
            tenant_id=tenant_id,
            post_id=post_id,
            integration_id=integration_id,
            external_id=entry.external_id,
            existed=existed,
        )
        return {"deleted": True, "external_id": entry.external_id, "existed": existed}

    async def get_publish_history(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str | None = None,
        limit: int = 50,
    ) -> list[PublishLogEntry]:
        return await self._logs.history(tenant_id, post_id, integration_id, limit=limit)

    # ── Drift ───────────────────────────────────────────────────────────────

    async def check_sync(
        self,
        tenant_id: str,
        integration_id: str,
        *,
        item_id: str | None = None,
        local: LocalSnapshot | None = None,
        post_id: str | None = None,
        collection_id: str | None = None,
    ) -> SyncStatus:
        """Compare a local snapshot with the remote item.

        Either pass ``item_id`` and ``local`` explicitly, or a ``post_id`` whose
        last publish supplies the item id and whose stored post supplies the
        local snapshot.
        """
        integration = await self.get_integration(tenant_id, integration_id)
        provider = self._provider(integration)

        if post_id is not None:
            if item_id is None:
                entry = await self._published_entry(tenant_id, post_id, integration_id)
                item_id = entry.external_id
                collection_id = collection_id or entry.response_metadata.get("collection_id")
            if local is None:
                post = await self._post(tenant_id, post_id)
                local = LocalSnapshot(title=post.title, updated_at=post.updated_at)

        if item_id is None or local is None:
            raise ConfigValidationError({"item_id": "item_id and local, or post_id, are required"})

        status = await provider.check_sync(self._config(integration), item_id, local, collection_id)
        logger.info(
            "sync.checked",
            tenant_id=tenant_id,
            integration_id=integration_id,
            item_id=item_id,
            in_sync=status.in_sync,
            differences=status.differences,
        )
        return status

    # ── Internals ───────────────────────────────────────────────────────────

    async def _published_entry(self, tenant_id: str, post_id: str, integration_id: str) -> PublishLogEntry:
        entry = await self._logs.latest(
            tenant_id,
            post_id,
            integration_id,
            statuses=[PublishStatus.SUCCESS, PublishStatus.PARTIAL],
        )
        if entry is None or not entry.external_id or entry.operation == "delete":
            raise NotPublishedError(f"Post {post_id} has not been published through integration {integration_id}")
        return entry

    async def _audited(
        self,
        tenant_id: str,
        integration: Integration,
        post_id: str,
        operation: str,
        request_metadata: dict[str, Any],
        call: Callable[[], Awaitable[PublishResult]],
    ) -> PublishResult:
        """Run ``call`` between a pending and a terminal publish log entry."""
        attempt = await self._logs.next_attempt(tenant_id, post_id, integration.id)
        await self._logs.append(
            tenant_id,
            post_id,
            integration.id,
            attempt=attempt,
            status=PublishStatus.PENDING,
            operation=operation,
            request_metadata=request_metadata,
        )

        try:
            result: PublishResult = await call()
        except Exception as exc:
            # the attempt still gets its terminal row
            await self._logs.append(
                tenant_id,
                post_id,
                integration.id,
                attempt=attempt,
                status=PublishStatus.FAILED,
                operation=operation,
                error_message=str(exc) or type(exc).__name__,
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                request_metadata=request_metadata,
                response_metadata={"reason": type(exc).__name__},
            )
            record_publish_outcome(integration.platform.value, PublishStatus.FAILED.value)
            logger.exception(
                "publish.crashed",
                tenant_id=tenant_id,
                post_id=post_id,
                integration_id=integration.id,
                operation=operation,
                attempt=attempt,
            )
            raise

        status = log_status_for(result)

        await self._logs.append(
            tenant_id,
            post_id,
            integration.id,
            attempt=attempt,
            status=status,
            operation=operation,
            external_id=result.item_id,
            external_url=result.external_url,
            error_message=result.error,
            error_code=result.error_code,
            request_metadata=request_metadata,
            response_metadata=_response_metadata(result),
        )
        if result.success:
            await self._integrations.update(tenant_id, integration.id, last_sync=datetime.now(timezone.utc))
        record_publish_outcome(integration.platform.value, status.value)

        logger.info(
            "publish.completed",
            tenant_id=tenant_id,
            post_id=post_id,
            integration_id=integration.id,
            platform=integration.platform.value,
            operation=operation,
            attempt=attempt,
            status=status.value,
            item_id=result.item_id,
            error_code=result.error_code,
        )
        return result
