"""Shopify provider -- blog articles through the Admin REST API.

The shop is the only site; its blogs are the collections. Articles share a
fixed field set, so the schema call only confirms the blog exists and
supplies its handle for URL building. Publishing is a single call whose
``published`` flag decides visibility.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from src.app.integrations.base import BaseIntegrationProvider, PreparedItem, PublishTarget
from src.app.integrations.connection import ShopifyConnectionConfig
from src.app.integrations.errors import (
    ConfigValidationError,
    IntegrationConnectionError,
    PlatformNotFoundError,
)
from src.app.integrations.mapping import AliasRule, FieldMappingResolver, MappingProfile
from src.app.integrations.providers.shopify.client import (
    DEFAULT_API_VERSION,
    ShopifyClient,
    normalize_shop_domain,
)
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
    FieldType,
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

SHOPIFY_FIELDS: tuple[Field, ...] = (
    Field(id="title", name="Title", slug="title", type=FieldType.TEXT, native_type="string", required=True),
    Field(id="body_html", name="Content", slug="body_html", type=FieldType.RICH_TEXT, native_type="html"),
    Field(id="summary_html", name="Excerpt", slug="summary_html", type=FieldType.RICH_TEXT, native_type="html"),
    Field(id="handle", name="Handle", slug="handle", type=FieldType.TEXT, native_type="string"),
    Field(id="author", name="Author", slug="author", type=FieldType.TEXT, native_type="string"),
    Field(id="tags", name="Tags", slug="tags", type=FieldType.TEXT, native_type="string"),
    Field(id="image", name="Image", slug="image", type=FieldType.IMAGE, native_type="image"),
    Field(id="published_at", name="Published At", slug="published_at", type=FieldType.DATE, native_type="datetime"),
)

SHOPIFY_MAPPING_PROFILE = MappingProfile(
    platform="shopify",
    alias_rules=(
        AliasRule(BlogField.TITLE, ("title",)),
        AliasRule(BlogField.CONTENT, ("body_html",)),
        AliasRule(BlogField.EXCERPT, ("summary_html",)),
        AliasRule(BlogField.SLUG, ("handle",)),
        AliasRule(BlogField.AUTHOR, ("author",)),
        AliasRule(BlogField.TAGS, ("tags",)),
        AliasRule(BlogField.FEATURED_IMAGE, ("image",)),
        AliasRule(BlogField.PUBLISHED_AT, ("published_at",)),
    ),
    defaults=(
        FieldMapping(blog_field=BlogField.TITLE, target_field="title"),
        FieldMapping(blog_field=BlogField.CONTENT, target_field="body_html"),
        FieldMapping(blog_field=BlogField.SLUG, target_field="handle"),
    ),
)


def article_payload(fields: dict[str, Any], wants_live: bool) -> dict[str, Any]:
    """Adapt generic field values to the article resource."""
    article = dict(fields)
    image = article.get("image")
    if isinstance(image, dict) and "url" in image:
        article["image"] = {"src": image["url"]}
    if not wants_live:
        article.pop("published_at", None)
    article["published"] = wants_live
    return article


def snapshot_from_article(article: dict[str, Any]) -> RemoteSnapshot:
    published_at = parse_datetime(article.get("published_at"))
    return RemoteSnapshot(
        title=article.get("title"),
        last_updated=parse_datetime(article.get("updated_at")),
        is_draft=published_at is None,
        is_archived=False,
        last_published=published_at,
    )


class ShopifyProvider(BaseIntegrationProvider):
    """Shopify Online Store blog provider.

    Args:
        api_version: Admin API version used when the config names none.
    """

    platform = Platform.SHOPIFY
    display_name = "Shopify"
    description = "Publish blog posts as Shopify Online Store blog articles"
    mapping_profile = SHOPIFY_MAPPING_PROFILE

    def __init__(
        self,
        api_version: str = DEFAULT_API_VERSION,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        resolver: FieldMappingResolver | None = None,
        retry_policy: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(resolver=resolver, retry_policy=retry_policy, sleep=sleep)
        self._api_version = api_version
        self._read_timeout = read_timeout
        self._mutate_timeout = mutate_timeout
        self._transport = transport

    def client_for(self, config: ShopifyConnectionConfig) -> ShopifyClient:
        return ShopifyClient(
            shop_domain=config.shop_domain,
            access_token=config.access_token.get_secret_value(),
            api_version=config.api_version or self._api_version,
            read_timeout=self._read_timeout,
            mutate_timeout=self._mutate_timeout,
            transport=self._transport,
        )

    def _blog_id(self, config: ShopifyConnectionConfig, collection_id: str | None) -> str:
        blog_id = collection_id or config.blog_id
        if not blog_id:
            raise ConfigValidationError({"blog_id": "Blog ID is required"})
        return blog_id

    def get_required_config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                key="shop_domain",
                label="Shop Domain",
                required=True,
                placeholder="your-store.myshopify.com",
                validation=ConfigFieldValidation(pattern=r"^(https?://)?[a-z0-9][a-z0-9-]*\.myshopify\.com/?$"),
            ),
            ConfigField(
                key="access_token",
                label="Admin API Access Token",
                type=ConfigFieldType.PASSWORD,
                required=True,
                description="Custom app token with write_content scope",
                validation=ConfigFieldValidation(min_length=20),
            ),
            ConfigField(
                key="blog_id",
                label="Blog ID",
                description="Optional; detected when the shop has a single blog",
                validation=ConfigFieldValidation(pattern=r"^\d+$"),
            ),
            ConfigField(key="api_version", label="API Version", placeholder=DEFAULT_API_VERSION),
        ]

    # ── Connection ──────────────────────────────────────────────────────────

    async def validate_connection(self, config: ShopifyConnectionConfig) -> bool:
        shop = await self.with_retry(self.client_for(config).get_shop)
        if not shop.get("id"):
            raise IntegrationConnectionError("Shopify did not return the shop for this token")
        logger.info("shopify.connection_verified", shop_id=shop.get("id"), shop_domain=config.shop_domain)
        return True

    # ── Schema ──────────────────────────────────────────────────────────────

    async def get_sites(self, config: ShopifyConnectionConfig) -> list[Site]:
        shop = await self.with_retry(self.client_for(config).get_shop)
        domain = shop.get("domain") or normalize_shop_domain(config.shop_domain)
        return [
            Site(
                id=str(shop.get("id") or domain),
                name=shop.get("name") or domain,
                short_name=shop.get("myshopify_domain"),
                url=f"https://{domain}",
                metadata={"plan": shop.get("plan_name")} if shop.get("plan_name") else {},
            )
        ]

    async def get_collections(self, config: ShopifyConnectionConfig, site_id: str) -> list[Collection]:
        blogs = await self.with_retry(self.client_for(config).list_blogs)
        return [self._collection(blog, site_id) for blog in blogs]

    async def get_field_schema(self, config: ShopifyConnectionConfig, collection_id: str) -> Collection:
        blog = await self.client_for(config).get_blog(collection_id)
        return self._collection(blog, None)

    @staticmethod
    def _collection(blog: dict[str, Any], site_id: str | None) -> Collection:
        return Collection(
            id=str(blog["id"]),
            name=blog.get("title") or str(blog["id"]),
            slug=blog.get("handle") or "",
            site_id=site_id,
            fields=list(SHOPIFY_FIELDS),
        )

    # ── Publish ─────────────────────────────────────────────────────────────

    async def resolve_target(self, config: ShopifyConnectionConfig, request: PublishRequest) -> PublishTarget:
        blog_id = request.collection_id or config.blog_id
        if not blog_id:
            blogs = await self.with_retry(self.client_for(config).list_blogs)
            if len(blogs) != 1:
                raise ConfigValidationError(
                    {"blog_id": "Blog ID is required when the shop has more than one blog"}
                )
            blog_id = str(blogs[0]["id"])
        return PublishTarget(collection_id=blog_id, site_id=normalize_shop_domain(config.shop_domain))

    def _result(self, article: dict[str, Any], prepared: PreparedItem) -> PublishResult:
        published_at = parse_datetime(article.get("published_at"))
        url = None
        if published_at and prepared.collection.slug and article.get("handle"):
            url = f"https://{prepared.target.site_id}/blogs/{prepared.collection.slug}/{article['handle']}"
        return PublishResult(
            success=True,
            published=published_at is not None,
            item_id=str(article["id"]),
            external_url=url,
            published_at=published_at,
            state=PublishState.DONE,
            metadata={"collection_id": prepared.target.collection_id, "fields": sorted(prepared.fields)},
        )

    async def do_publish(
        self,
        config: ShopifyConnectionConfig,
        request: PublishRequest,
        post: BlogPost,
        prepared: PreparedItem,
    ) -> PublishResult:
        article = await self.client_for(config).create_article(
            prepared.target.collection_id, article_payload(prepared.fields, request.wants_live)
        )
        self.log_state(request, PublishState.ITEM_CREATED, item_id=article.get("id"))
        self.log_state(request, PublishState.DONE, item_id=article.get("id"), published=request.wants_live)
        return self._result(article, prepared)

    async def do_update(
        self,
        config: ShopifyConnectionConfig,
        request: PublishRequest,
        post: BlogPost,
        external_id: str,
        prepared: PreparedItem,
    ) -> PublishResult:
        article = await self.client_for(config).update_article(
            prepared.target.collection_id, external_id, article_payload(prepared.fields, request.wants_live)
        )
        self.log_state(request, PublishState.DONE, item_id=external_id, update=True)
        return self._result(article, prepared)

    # ── Item lifecycle ──────────────────────────────────────────────────────

    async def delete(self, config: Any, external_id: str, collection_id: str | None = None) -> bool:
        typed = self.parse_config(config)
        try:
            await self.client_for(typed).delete_article(self._blog_id(typed, collection_id), external_id)
        except PlatformNotFoundError:
            logger.info("shopify.delete_missing_article", article_id=external_id)
            return False
        return True

    async def get_status(
        self,
        config: Any,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteItemStatus:
        typed = self.parse_config(config)
        blog_id = self._blog_id(typed, collection_id)
        client = self.client_for(typed)
        try:
            article = await self.with_retry(lambda: client.get_article(blog_id, external_id))
        except PlatformNotFoundError:
            return RemoteItemStatus(
                status=PublishStatus.FAILED,
                external_id=external_id,
                error="Shopify article not found - may have been deleted",
            )

        snapshot = snapshot_from_article(article)
        return RemoteItemStatus(
            status=PublishStatus.PENDING if snapshot.is_draft else PublishStatus.SUCCESS,
            external_id=external_id,
            is_draft=snapshot.is_draft,
            is_archived=False,
            last_published=snapshot.last_published,
            last_updated=snapshot.last_updated,
        )

    async def get_remote_snapshot(
        self,
        config: ShopifyConnectionConfig,
        external_id: str,
        collection_id: str | None = None,
    ) -> RemoteSnapshot:
        article = await self.client_for(config).get_article(self._blog_id(config, collection_id), external_id)
        return snapshot_from_article(article)
