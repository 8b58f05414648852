"""WordPress provider -- single-phase publishing through the wp/v2 REST API.

A WordPress install is one site. Collections are the REST-exposed post
types (``posts``, ``pages``, custom types) identified by their rest_base.
Every post type shares the fixed core field set, so the schema is static
and only the collection's existence is checked remotely.

Publishing is one call: the entry is created with ``status`` set to the
configured post status (or ``draft``), so there is no orphaned-draft state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from src.app.integrations.base import BaseIntegrationProvider, PreparedItem, PublishTarget
from src.app.integrations.connection import WordPressConnectionConfig
from src.app.integrations.errors import IntegrationConnectionError, PlatformNotFoundError
from src.app.integrations.mapping import AliasRule, FieldMappingResolver, MappingProfile
from src.app.integrations.providers.wordpress.client import WordPressClient
from src.app.integrations.retry import BackoffPolicy
from src.app.integrations.schemas import (
    BlogField,
    BlogPost,
    Collection,
    ConfigField,
    ConfigFieldType,
    ConfigFieldValidation,
    Field,
    FieldMapping,
    FieldTransform,
    FieldType,
    Platform,
    PublishRequest,
    PublishResult,
    PublishState,
    PublishStatus,
    RemoteItemStatus,
    RemoteSnapshot,
    Site,
    TransformType,
)
from src.app.integrations.transforms import parse_datetime

logger = structlog.get_logger(__name__)

DEFAULT_POST_TYPE = "posts"

# Internal post types that are REST-visible but never publish targets
_INTERNAL_TYPES = {
    "attachment",
    "nav_menu_item",
    "wp_block",
    "wp_template",
    "wp_template_part",
    "wp_navigation",
    "wp_global_styles",
    "wp_font_family",
    "wp_font_face",
}

WORDPRESS_FIELDS: tuple[Field, ...] = (
    Field(id="title", name="Title", slug="title", type=FieldType.TEXT, native_type="string", required=True),
    Field(id="content", name="Content", slug="content", type=FieldType.RICH_TEXT, native_type="string"),
    Field(id="excerpt", name="Excerpt", slug="excerpt", type=FieldType.TEXT, native_type="string"),
    Field(id="slug", name="Slug", slug="slug", type=FieldType.TEXT, native_type="string"),
    Field(id="date_gmt", name="Publish Date (GMT)", slug="date_gmt", type=FieldType.DATE, native_type="date-time"),
)

_DATE_FORMAT = FieldTransform(type=TransformType.DATE_FORMAT, options={"format": "ISO8601"})

WORDPRESS_MAPPING_PROFILE = MappingProfile(
    platform="wordpress",
    alias_rules=(
        AliasRule(BlogField.TITLE, ("title",)),
        AliasRule(BlogField.CONTENT, ("content",)),
        AliasRule(BlogField.EXCERPT, ("excerpt",)),
        AliasRule(BlogField.SLUG, ("slug",)),
        AliasRule(BlogField.PUBLISHED_AT, ("date_gmt",), transform=_DATE_FORMAT),
    ),
    defaults=(
        FieldMapping(blog_field=BlogField.TITLE, target_field="title"),
        FieldMapping(blog_field=BlogField.CONTENT, target_field="content"),
        FieldMapping(blog_field=BlogField.EXCERPT, target_field="excerpt"),
        FieldMapping(blog_field=BlogField.SLUG, target_field="slug"),
    ),
)


def _rendered(value: Any) -> str | None:
    """wp/v2 wraps text fields as {"raw": ..., "rendered": ...}."""
    if isinstance(value, dict):
        return value.get("raw") or value.get("rendered")
    return value


def snapshot_from_entry(entry: dict[str, Any]) -> RemoteSnapshot:
    status = entry.get("status")
    return RemoteSnapshot(
        title=_rendered(entry.get("title")),
        last_updated=parse_datetime(entry.get("modified_gmt")),
        is_draft=status != "publish" if status else None,
        is_archived=status == "trash" if status else None,
        last_published=parse_datetime(entry.get("date_gmt")) if status == "publish" else None,
    )


class WordPressProvider(BaseIntegrationProvider):
    """WordPress (self-hosted or WordPress.com Business) provider."""

    platform = Platform.WORDPRESS
    display_name = "WordPress"
    description = "Publish blog posts to a WordPress site over the REST API"
    mapping_profile = WORDPRESS_MAPPING_PROFILE

    def __init__(
        self,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        resolver: FieldMappingResolver | None = None,
        retry_policy: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(resolver=resolver, retry_policy=retry_policy, sleep=sleep)
        self._read_timeout = read_timeout
        self._mutate_timeout = mutate_timeout
        self._transport = transport

    def client_for(self, config: WordPressConnectionConfig) -> WordPressClient:
        return WordPressClient(
            base_url=config.base_url,
            username=config.username,
            application_password=config.application_password.get_secret_value(),
            read_timeout=self._read_timeout,
            mutate_timeout=self._mutate_timeout,
            transport=self._transport,
        )

    def get_required_config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                key="base_url",
                label="Site URL",
                type=ConfigFieldType.URL,
                required=True,
                placeholder="https://blog.example.com",
                validation=ConfigFieldValidation(pattern=r"^https?://"),
            ),
            ConfigField(key="username", label="Username", required=True),
            ConfigField(
                key="application_password",
                label="Application Password",
                type=ConfigFieldType.PASSWORD,
                required=True,
                description="Created under Users > Profile > Application Passwords",
                validation=ConfigFieldValidation(min_length=8),
            ),
            ConfigField(
                key="post_status",
                label="Post Status",
                type=ConfigFieldType.SELECT,
                description="Status used when a post is published live",
                options=[{"value": s, "label": s.title()} for s in ("publish", "pending", "private")],
            ),
        ]

    # ── Connection ──────────────────────────────────────────────────────────

    async def validate_connection(self, config: WordPressConnectionConfig) -> bool:
        client = self.client_for(config)
        user = await self.with_retry(client.get_current_user)
        if not user.get("id"):
            raise IntegrationConnectionError("WordPress did not return the authenticated user")
        logger.info("wordpress.connection_verified", user_id=user.get("id"), base_url=config.base_url)
        return True

    # ── Schema ──────────────────────────────────────────────────────────────

    async def get_sites(self, config: WordPressConnectionConfig) -> list[Site]:
        info = await self.with_retry(self.client_for(config).get_site_info)
        url = info.get("url") or config.base_url
        return [
            Site(
                id=config.base_url,
                name=info.get("name") or urlparse(url).netloc,
                short_name=urlparse(url).netloc or None,
                url=url,
                metadata={"description": info.get("description")},
            )
        ]

    async def get_collections(self, config: WordPressConnectionConfig, site_id: str) -> list[Collection]:
        types = await self.with_retry(self.client_for(config).list_types)
        return [
            self._collection(info, site_id)
            for slug, info in types.items()
            if slug not in _INTERNAL_TYPES and info.get("rest_base")
        ]

    async def get_field_schema(self, config: WordPressConnectionConfig, collection_id: str) -> Collection:
        types = await self.client_for(config).list_types()
        for info in types.values():
            if info.get("rest_base") == collection_id:
                return self._collection(info, config.base_url)
        raise PlatformNotFoundError(message=f"WordPress post type '{collection_id}' not found")

    @staticmethod
    def _collection(info: dict[str, Any], site_id: str | None) -> Collection:
        return Collection(
            id=info["rest_base"],
            name=info.get("name") or info["rest_base"],
            slug=info.get("slug") or info["rest_base"],
            site_id=site_id,
            fields=list(WORDPRESS_FIELDS),
        )

    # ── Publish ─────────────────────────────────────────────────────────────

    async def resolve_target(self, config: WordPressConnectionConfig, request: PublishRequest) -> PublishTarget:
        return PublishTarget(
            collection_id=request.collection_id or config.extras.get("post_type") or DEFAULT_POST_TYPE,
            site_id=config.base_url,
        )

    def _status(self, config: WordPressConnectionConfig, request: PublishRequest) -> str:
        return config.post_status if request.wants_live else "draft"

    def _result(self, entry: dict[str, Any], prepared: PreparedItem) -> PublishResult:
        live = entry.get("status") == "publish"
        return PublishResult(
            success=True,
            published=live,
            item_id=str(entry["id"]),
            external_url=entry.get("link") if live else None,
            published_at=parse_datetime(entry.get("date_gmt")) if live else None,
            state=PublishState.DONE,
            metadata={
                "collection_id": prepared.target.collection_id,
                "status": entry.get("status"),
                "fields": sorted(prepared.fields),
            },
        )

    async def do_publish(
        self,
        config: WordPressConnectionConfig,
        request: PublishRequest,
        post: BlogPost,
        prepared: PreparedItem,
    ) -> PublishResult:
        payload = {**prepared.fields, "status": self._status(config, request)}
        entry = await self.client_for(config).create_entry(prepared.target.collection_id, payload)
        self.log_state(request, PublishState.ITEM_CREATED, item_id=entry.get("id"))
        self.log_state(request, PublishState.DONE, item_id=entry.get("id"), status=entry.get("status"))
        return self._result(entry, prepared)

    async def do_update(
        self,
        config: WordPressConnectionConfig,
        request: PublishRequest,
        post: BlogPost,
        external_id: str,
        prepared: PreparedItem,
    ) -> PublishResult:
        payload = {**prepared.fields, "status": self._status(config, request)}
        entry = await self.client_for(config).update_entry(prepared.target.collection_id, external_id, payload)
        self.log_state(request, PublishState.DONE, item_id=external_id, status=entry.get("status"), update=True)
        return self._result(entry, prepared)

    # ── Item lifecycle ──────────────────────────────────────────────────────

    async def delete(self, config: Any, external_id: str, collection_id: str | None = None) -> bool:
        typed = self.parse_config(config)
        try:
            await self.client_for(typed).delete_entry(collection_id or DEFAULT_POST_TYPE, external_id)
        except PlatformNotFoundError:
            logger.info("wordpress.delete_missing_entry", entry_id=external_id)
            return False
        return True

    async def get_status(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteItemStatus:
        typed = self.parse_config(config)
        client = self.client_for(typed)
        try:
            entry = await self.with_retry(lambda: client.get_entry(collection_id or DEFAULT_POST_TYPE, external_id))
        except PlatformNotFoundError:
            return RemoteItemStatus(
                status=PublishStatus.FAILED,
                external_id=external_id,
                error="WordPress post not found - may have been deleted",
            )

        snapshot = snapshot_from_entry(entry)
        return RemoteItemStatus(
            status=PublishStatus.SUCCESS if entry.get("status") == "publish" else PublishStatus.PENDING,
            external_id=external_id,
            is_draft=snapshot.is_draft,
            is_archived=snapshot.is_archived,
            last_published=snapshot.last_published,
            last_updated=snapshot.last_updated,
        )

    async def get_remote_snapshot(
        self,
        config: WordPressConnectionConfig,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteSnapshot:
        entry = await self.client_for(config).get_entry(collection_id or DEFAULT_POST_TYPE, external_id)
        return snapshot_from_entry(entry)
