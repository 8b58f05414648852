"""Async HTTP client wrapper for the Webflow Data API v2.

Endpoints cover what publishing needs: sites, collections with
their field schemas, item CRUD and the site publish that makes created
items live. Errors and timeouts come from PlatformRestClient.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.app.integrations.providers.http import PlatformRestClient

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.webflow.com/v2"


class WebflowClient(PlatformRestClient):
    """Async client for Webflow sites, collections, items and site publishing.

    Args:
        api_token: Webflow site or workspace API token.
        base_url: API root (default: https://api.webflow.com/v2).
        read_timeout: Seconds for GET requests.
        mutate_timeout: Seconds for POST/PATCH/DELETE requests.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            "webflow",
            base_url,
            headers={
                "Authorization": f"Bearer {api_token}",
                "accept": "application/json",
                "Content-Type": "application/json",
            },
            read_timeout=read_timeout,
            mutate_timeout=mutate_timeout,
            transport=transport,
        )

    # ── Sites ───────────────────────────────────────────────────────────────

    async def list_sites(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/sites", "list_sites")
        return data.get("sites", [])

    async def publish_site(self, site_id: str, item_ids: list[str] | None = None) -> dict[str, Any]:
        """Trigger a site publish so created items go live."""
        body: dict[str, Any] = {"publishToWebflowSubdomain": True}
        if item_ids:
            body["itemIds"] = item_ids
        result = await self._request("POST", f"/sites/{site_id}/publish", "publish_site", json=body)
        logger.info("webflow.site_published", site_id=site_id, item_ids=item_ids or [])
        return result

    # ── Collections ─────────────────────────────────────────────────────────

    async def list_collections(self, site_id: str) -> list[dict[str, Any]]:
        data = await self._request("GET", f"/sites/{site_id}/collections", "list_collections")
        return data.get("collections", [])

    async def get_collection(self, collection_id: str) -> dict[str, Any]:
        """Collection with its field schema."""
        return await self._request("GET", f"/collections/{collection_id}", "get_collection")

    # ── Items ───────────────────────────────────────────────────────────────

    async def get_item(self, collection_id: str, item_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/collections/{collection_id}/items/{item_id}", "get_item")

    async def create_item(
        self,
        collection_id: str,
        field_data: dict[str, Any],
        is_draft: bool = False,
    ) -> dict[str, Any]:
        result = await self._request(
            "POST",
            f"/collections/{collection_id}/items",
            "create_item",
            json={"fieldData": field_data, "isDraft": is_draft, "isArchived": False},
        )
        logger.info("webflow.item_created", collection_id=collection_id, item_id=result.get("id"))
        return result

    async def update_item(
        self,
        collection_id: str,
        item_id: str,
        field_data: dict[str, Any] | None = None,
        is_draft: bool | None = None,
        is_archived: bool | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if field_data is not None:
            body["fieldData"] = field_data
        if is_draft is not None:
            body["isDraft"] = is_draft
        if is_archived is not None:
            body["isArchived"] = is_archived
        result = await self._request(
            "PATCH", f"/collections/{collection_id}/items/{item_id}", "update_item", json=body
        )
        logger.info("webflow.item_updated", collection_id=collection_id, item_id=item_id, changes=sorted(body))
        return result

    async def delete_item(self, collection_id: str, item_id: str) -> None:
        await self._request("DELETE", f"/collections/{collection_id}/items/{item_id}", "delete_item")
        logger.info("webflow.item_deleted", collection_id=collection_id, item_id=item_id)
