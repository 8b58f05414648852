"""Async client for the WordPress REST API (wp/v2) with application passwords."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.app.integrations.providers.http import PlatformRestClient

logger = structlog.get_logger(__name__)


class WordPressClient(PlatformRestClient):
    """Basic-auth client rooted at ``{base_url}/wp-json``.

    Paths are relative to /wp-json so the site index (``/``) and the wp/v2
    routes share one client.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        application_password: str,
        read_timeout: float | None = None,
        mutate_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            "wordpress",
            f"{base_url.rstrip('/')}/wp-json",
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            auth=(username, application_password),
            read_timeout=read_timeout,
            mutate_timeout=mutate_timeout,
            transport=transport,
        )

    async def get_site_info(self) -> dict[str, Any]:
        return await self._request("GET", "/", "get_site_info")

    async def get_current_user(self) -> dict[str, Any]:
        return await self._request("GET", "/wp/v2/users/me", "get_current_user", params={"context": "edit"})

    async def list_types(self) -> dict[str, Any]:
        return await self._request("GET", "/wp/v2/types", "list_types")

    async def get_type(self, type_slug: str) -> dict[str, Any]:
        return await self._request("GET", f"/wp/v2/types/{type_slug}", "get_type")

    async def get_entry(self, rest_base: str, entry_id: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"/wp/v2/{rest_base}/{entry_id}", "get_entry", params={"context": "edit"}
        )

    async def create_entry(self, rest_base: str, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self._request("POST", f"/wp/v2/{rest_base}", "create_entry", json=payload)
        logger.info("wordpress.entry_created", rest_base=rest_base, entry_id=result.get("id"), status=result.get("status"))
        return result

    async def update_entry(self, rest_base: str, entry_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        # wp/v2 accepts POST for edits
        result = await self._request("POST", f"/wp/v2/{rest_base}/{entry_id}", "update_entry", json=payload)
        logger.info("wordpress.entry_updated", rest_base=rest_base, entry_id=entry_id, status=result.get("status"))
        return result

    async def delete_entry(self, rest_base: str, entry_id: str) -> None:
        await self._request(
            "DELETE", f"/wp/v2/{rest_base}/{entry_id}", "delete_entry", params={"force": "true"}
        )
        logger.info("wordpress.entry_deleted", rest_base=rest_base, entry_id=entry_id)
