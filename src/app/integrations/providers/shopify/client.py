"""Async client for the Shopify Admin REST API (shop, blogs, articles)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.app.integrations.providers.http import PlatformRestClient

logger = structlog.get_logger(__name__)

DEFAULT_API_VERSION = "2024-10"


def normalize_shop_domain(shop_domain: str) -> str:
    """Strip scheme and trailing slash: https://x.myshopify.com/ -> x.myshopify.com."""
    domain = shop_domain.strip()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


class ShopifyClient(PlatformRestClient):
    """Client rooted at ``https://{shop}/admin/api/{version}``."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.shop_domain = normalize_shop_domain(shop_domain)
        super().__init__(
            "shopify",
            f"https://{self.shop_domain}/admin/api/{api_version}",
            headers={"X-Shopify-Access-Token": access_token, "Content-Type": "application/json"},
            read_timeout=read_timeout,
            mutate_timeout=mutate_timeout,
            transport=transport,
        )

    async def get_shop(self) -> dict[str, Any]:
        data = await self._request("GET", "/shop.json", "get_shop")
        return data.get("shop", {})

    async def list_blogs(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/blogs.json", "list_blogs")
        return data.get("blogs", [])

    async def get_blog(self, blog_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/blogs/{blog_id}.json", "get_blog")
        return data.get("blog", {})

    async def get_article(self, blog_id: str, article_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/blogs/{blog_id}/articles/{article_id}.json", "get_article")
        return data.get("article", {})

    async def create_article(self, blog_id: str, article: dict[str, Any]) -> dict[str, Any]:
        data = await self._request(
            "POST", f"/blogs/{blog_id}/articles.json", "create_article", json={"article": article}
        )
        created = data.get("article", {})
        logger.info("shopify.article_created", blog_id=blog_id, article_id=created.get("id"))
        return created

    async def update_article(self, blog_id: str, article_id: str, article: dict[str, Any]) -> dict[str, Any]:
        data = await self._request(
            "PUT",
            f"/blogs/{blog_id}/articles/{article_id}.json",
            "update_article",
            json={"article": {"id": int(article_id) if article_id.isdigit() else article_id, **article}},
        )
        logger.info("shopify.article_updated", blog_id=blog_id, article_id=article_id)
        return data.get("article", {})

    async def delete_article(self, blog_id: str, article_id: str) -> None:
        await self._request("DELETE", f"/blogs/{blog_id}/articles/{article_id}.json", "delete_article")
        logger.info("shopify.article_deleted", blog_id=blog_id, article_id=article_id)
