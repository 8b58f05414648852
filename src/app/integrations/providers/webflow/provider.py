"""Webflow provider -- BaseIntegrationProvider over the Webflow Data API v2.

Wires together:
- WebflowClient (HTTP, typed errors)
- WebflowSchemaClient (sites/collections, site auto-detection)
- WebflowPublisher (two-phase create + site publish)
- WEBFLOW_MAPPING_PROFILE (aliases and default mappings)

A fresh client is built per call from the decrypted connection config, so a
provider instance holds no credentials and is shared across tenants.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from src.app.integrations.base import BaseIntegrationProvider, PreparedItem, PublishTarget
from src.app.integrations.connection import WebflowConnectionConfig
from src.app.integrations.errors import (
    ConfigValidationError,
    IntegrationConnectionError,
    IntegrationError,
    PlatformNotFoundError,
)
from src.app.integrations.mapping import FieldMappingResolver
from src.app.integrations.providers.webflow.client import DEFAULT_BASE_URL, WebflowClient
from src.app.integrations.providers.webflow.field_mapping import WEBFLOW_MAPPING_PROFILE
from src.app.integrations.providers.webflow.publisher import WebflowPublisher
from src.app.integrations.providers.webflow.schema import (
    WebflowSchemaClient,
    collection_from_payload,
)
from src.app.integrations.retry import BackoffPolicy
from src.app.integrations.schemas import (
    BlogPost,
    Collection,
    ConfigField,
    ConfigFieldType,
    ConfigFieldValidation,
    HealthCheck,
    HealthStatus,
    Platform,
    PublishRequest,
    PublishResult,
    PublishState,
    PublishStatus,
    RemoteItemStatus,
    RemoteSnapshot,
    Site,
)
from src.app.integrations.transforms import parse_datetime

logger = structlog.get_logger(__name__)

WEBFLOW_ID_PATTERN = r"^[a-f0-9]{24}$"


def snapshot_from_item(item: dict[str, Any]) -> RemoteSnapshot:
    field_data = item.get("fieldData") or {}
    return RemoteSnapshot(
        title=field_data.get("name") or field_data.get("title"),
        last_updated=parse_datetime(item.get("lastUpdated")),
        is_draft=item.get("isDraft"),
        is_archived=item.get("isArchived"),
        last_published=parse_datetime(item.get("lastPublished")),
    )


class WebflowProvider(BaseIntegrationProvider):
    """Webflow CMS provider.

    Args:
        base_url: Webflow API root.
        read_timeout: Seconds for reads.
        mutate_timeout: Seconds for writes and site publish.
        transport: Optional httpx transport shared by every client (tests).
        resolver: Field mapping resolver with the tenant mapping store.
        retry_policy: Backoff policy for reads.
        sleep: Awaitable sleep used between retries.
    """

    platform = Platform.WEBFLOW
    display_name = "Webflow"
    description = "Publish blog posts as Webflow CMS collection items"
    mapping_profile = WEBFLOW_MAPPING_PROFILE

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        resolver: FieldMappingResolver | None = None,
        retry_policy: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(resolver=resolver, retry_policy=retry_policy, sleep=sleep)
        self._base_url = base_url
        self._read_timeout = read_timeout
        self._mutate_timeout = mutate_timeout
        self._transport = transport

    # ── Clients ─────────────────────────────────────────────────────────────

    def client_for(self, config: WebflowConnectionConfig) -> WebflowClient:
        return WebflowClient(
            api_token=config.api_token.get_secret_value(),
            base_url=self._base_url,
            read_timeout=self._read_timeout,
            mutate_timeout=self._mutate_timeout,
            transport=self._transport,
        )

    def schema_for(self, config: WebflowConnectionConfig) -> WebflowSchemaClient:
        return WebflowSchemaClient(self.client_for(config), self._retry_policy, self._sleep)

    def _collection_id(self, config: WebflowConnectionConfig, collection_id: str | None) -> str:
        resolved = collection_id or config.collection_id
        if not resolved:
            raise ConfigValidationError({"collection_id": "Collection ID is required"})
        return resolved

    # ── Config ──────────────────────────────────────────────────────────────

    def get_required_config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                key="api_token",
                label="API Token",
                type=ConfigFieldType.PASSWORD,
                required=True,
                description="Webflow site API token with CMS read/write and site publish scopes",
                validation=ConfigFieldValidation(min_length=20),
            ),
            ConfigField(
                key="collection_id",
                label="Collection ID",
                type=ConfigFieldType.TEXT,
                required=True,
                description="Blog posts collection the items are created in",
                placeholder="64f1c0ffee0123456789abcd",
                validation=ConfigFieldValidation(pattern=WEBFLOW_ID_PATTERN),
            ),
            ConfigField(
                key="site_id",
                label="Site ID",
                type=ConfigFieldType.TEXT,
                required=False,
                description="Optional; detected from the collection when omitted",
                validation=ConfigFieldValidation(pattern=WEBFLOW_ID_PATTERN),
            ),
        ]

    # ── Connection ──────────────────────────────────────────────────────────

    async def validate_connection(self, config: WebflowConnectionConfig) -> bool:
        result = await self.schema_for(config).test_connection(config.site_id, config.collection_id)
        if not result.success:
            raise IntegrationConnectionError(result.message)
        return True

    async def test_connection(self, config: Any) -> HealthCheck:
        try:
            typed = self.parse_config(config)
        except ConfigValidationError as exc:
            return HealthCheck(status=HealthStatus.ERROR, message=exc.message, details=exc.to_dict())
        result = await self.schema_for(typed).test_connection(typed.site_id, typed.collection_id)
        return HealthCheck(
            status=HealthStatus.HEALTHY if result.success else HealthStatus.ERROR,
            message=result.message,
            details={"site_id": result.site_id, "site_name": result.site_name},
        )

    # ── Schema ──────────────────────────────────────────────────────────────

    async def get_sites(self, config: WebflowConnectionConfig) -> list[Site]:
        return await self.schema_for(config).get_sites()

    async def get_collections(self, config: WebflowConnectionConfig, site_id: str) -> list[Collection]:
        return await self.schema_for(config).get_collections(site_id)

    async def get_field_schema(self, config: WebflowConnectionConfig, collection_id: str) -> Collection:
        # retried by the caller
        raw = await self.client_for(config).get_collection(collection_id)
        return collection_from_payload(raw)

    # ── Publish ─────────────────────────────────────────────────────────────

    async def resolve_target(self, config: WebflowConnectionConfig, request: PublishRequest) -> PublishTarget:
        collection_id = self._collection_id(config, request.collection_id)
        site_id = request.site_id or config.site_id
        if site_id:
            return PublishTarget(collection_id=collection_id, site_id=site_id)
        site = await self.schema_for(config).auto_detect_site(collection_id)
        return PublishTarget(collection_id=collection_id, site_id=site.id, site_subdomain=site.short_name)

    async def do_publish(
        self,
        config: WebflowConnectionConfig,
        request: PublishRequest,
        post: BlogPost,
        prepared: PreparedItem,
    ) -> PublishResult:
        target = prepared.target
        return await WebflowPublisher(self.client_for(config)).create(
            request,
            site_id=target.site_id,
            site_subdomain=target.site_subdomain or target.site_id,
            collection=prepared.collection,
            fields=prepared.fields,
            item_slug=prepared.slug,
        )

    async def do_update(
        self,
        config: WebflowConnectionConfig,
        request: PublishRequest,
        post: BlogPost,
        external_id: str,
        prepared: PreparedItem,
    ) -> PublishResult:
        target = prepared.target
        return await WebflowPublisher(self.client_for(config)).update(
            request,
            item_id=external_id,
            site_id=target.site_id,
            site_subdomain=target.site_subdomain or target.site_id,
            collection=prepared.collection,
            fields=prepared.fields,
            item_slug=prepared.slug,
        )

    async def publish_site(
        self,
        config: Any,
        item_ids: list[str],
        site_id: str | None = None,
    ) -> PublishResult:
        try:
            typed = self.parse_config(config)
            resolved = site_id or typed.site_id
            if not resolved:
                resolved = await self.schema_for(typed).auto_detect_site_id(typed.collection_id)
        except IntegrationError as exc:
            return PublishResult(
                success=False,
                error=exc.message,
                error_code="PUBLISH_SITE_ERROR",
                state=PublishState.FAILED,
                metadata=exc.to_dict(),
            )
        return await WebflowPublisher(self.client_for(typed)).publish_site(resolved, item_ids)

    # ── Item lifecycle ──────────────────────────────────────────────────────

    async def delete(self, config: Any, external_id: str, collection_id: str | None = None) -> bool:
        typed = self.parse_config(config)
        try:
            await self.client_for(typed).delete_item(self._collection_id(typed, collection_id), external_id)
        except PlatformNotFoundError:
            logger.info("webflow.delete_missing_item", item_id=external_id)
            return False
        return True

    async def _item_action(
        self,
        action: str,
        external_id: str,
        run: Callable[[], Awaitable[PublishResult]],
    ) -> PublishResult:
        try:
            return await run()
        except IntegrationError as exc:
            logger.warning("webflow.item_action_failed", action=action, item_id=external_id, error=exc.message)
            return PublishResult(
                success=False,
                item_id=external_id,
                error=exc.message,
                error_code=f"{action.upper()}_ERROR",
                state=PublishState.FAILED,
                metadata={**exc.to_dict(), "detail_code": exc.error_code},
            )

    async def unpublish(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
        site_id: str | None = None,
    ) -> PublishResult:
        async def run() -> PublishResult:
            typed = self.parse_config(config)
            cid = self._collection_id(typed, collection_id)
            resolved = site_id or typed.site_id
            if not resolved:
                try:
                    resolved = await self.schema_for(typed).auto_detect_site_id(cid)
                except IntegrationError as exc:
                    # the draft flag alone is enough; the next site publish drops the item
                    logger.warning("webflow.unpublish_site_unknown", item_id=external_id, error=exc.message)
            return await WebflowPublisher(self.client_for(typed)).unpublish(external_id, cid, resolved)

        return await self._item_action("unpublish", external_id, run)

    async def archive(self, config: Any, external_id: str, collection_id: str | None = None) -> PublishResult:
        return await self._item_action(
            "archive", external_id, lambda: self._set_archived(config, external_id, collection_id, True)
        )

    async def restore(self, config: Any, external_id: str, collection_id: str | None = None) -> PublishResult:
        return await self._item_action(
            "restore", external_id, lambda: self._set_archived(config, external_id, collection_id, False)
        )

    async def _set_archived(
        self, config: Any, external_id: str, collection_id: str | None, archived: bool
    ) -> PublishResult:
        typed = self.parse_config(config)
        publisher = WebflowPublisher(self.client_for(typed))
        return await publisher.set_archived(external_id, self._collection_id(typed, collection_id), archived)

    async def get_status(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteItemStatus:
        typed = self.parse_config(config)
        cid = self._collection_id(typed, collection_id)
        client = self.client_for(typed)
        try:
            item = await self.with_retry(lambda: client.get_item(cid, external_id))
        except PlatformNotFoundError:
            return RemoteItemStatus(
                status=PublishStatus.FAILED,
                external_id=external_id,
                error="Webflow item not found - may have been deleted",
            )

        snapshot = snapshot_from_item(item)
        live = bool(snapshot.last_published) and not snapshot.is_draft and not snapshot.is_archived
        return RemoteItemStatus(
            status=PublishStatus.SUCCESS if live else PublishStatus.PENDING,
            external_id=external_id,
            is_draft=snapshot.is_draft,
            is_archived=snapshot.is_archived,
            last_published=snapshot.last_published,
            last_updated=snapshot.last_updated,
        )

    async def get_remote_snapshot(
        self,
        config: WebflowConnectionConfig,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteSnapshot:
        item = await self.client_for(config).get_item(self._collection_id(config, collection_id), external_id)
        return snapshot_from_item(item)
