"""Read-only Webflow schema introspection and site auto-detection.

WebflowSchemaClient turns raw Webflow payloads into Site / Collection /
Field models (native type names mapped to FieldType) and runs every read
under the retry policy.

Site auto-detection:
- exactly one accessible site -> that site, whatever the hint
- several sites and a collection hint -> first site whose collections
  contain the hint (sites that fail to list are skipped)
- otherwise -> AmbiguousSiteError; the caller must configure site_id
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel

from src.app.integrations.errors import AmbiguousSiteError, IntegrationError
from src.app.integrations.providers.webflow.client import WebflowClient
from src.app.integrations.providers.webflow.field_mapping import to_field_type
from src.app.integrations.retry import DEFAULT_POLICY, BackoffPolicy, with_retry
from src.app.integrations.schemas import Collection, Field, Site

logger = structlog.get_logger(__name__)


class WebflowConnectionTest(BaseModel):
    success: bool
    message: str
    site_id: str | None = None
    site_name: str | None = None


# ── Payload conversion ─────────────────────────────────────────────────────


def site_from_payload(raw: dict[str, Any]) -> Site:
    return Site(
        id=raw["id"],
        name=raw.get("displayName") or raw.get("shortName") or raw["id"],
        short_name=raw.get("shortName"),
        url=raw.get("previewUrl"),
        metadata={
            key: raw[key]
            for key in ("createdOn", "lastPublished", "lastUpdated", "timeZone", "customDomains")
            if key in raw
        },
    )


def field_from_payload(raw: dict[str, Any]) -> Field:
    native = raw.get("type")
    return Field(
        id=raw.get("id") or raw["slug"],
        name=raw.get("displayName") or raw["slug"],
        slug=raw["slug"],
        type=to_field_type(native),
        native_type=native,
        required=bool(raw.get("isRequired", False)),
        options=raw.get("validations") or {},
    )


def collection_from_payload(raw: dict[str, Any], site_id: str | None = None) -> Collection:
    return Collection(
        id=raw["id"],
        name=raw.get("displayName") or raw.get("singularName") or raw["id"],
        slug=raw.get("slug") or "",
        site_id=site_id or raw.get("siteId"),
        fields=[field_from_payload(f) for f in raw.get("fields", [])],
    )


# ── Schema client ──────────────────────────────────────────────────────────


class WebflowSchemaClient:
    """Sites, collections and field schemas for one Webflow token.

    Args:
        client: Configured WebflowClient.
        retry_policy: Backoff policy for reads.
        sleep: Awaitable sleep used between retries.
    """

    def __init__(
        self,
        client: WebflowClient,
        retry_policy: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._policy = retry_policy or DEFAULT_POLICY
        self._sleep = sleep

    async def _read(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        return await with_retry(fn, self._policy, sleep=self._sleep)

    async def get_sites(self) -> list[Site]:
        raw = await self._read(self._client.list_sites)
        return [site_from_payload(s) for s in raw]

    async def get_collections(self, site_id: str) -> list[Collection]:
        raw = await self._read(lambda: self._client.list_collections(site_id))
        return [collection_from_payload(c, site_id) for c in raw]

    async def get_collection(self, collection_id: str) -> Collection:
        raw = await self._read(lambda: self._client.get_collection(collection_id))
        return collection_from_payload(raw)

    async def auto_detect_site(self, collection_id: str | None = None) -> Site:
        sites = await self.get_sites()
        if not sites:
            raise AmbiguousSiteError("API key is valid but has no accessible sites")
        if len(sites) == 1:
            return sites[0]

        site_ids = [s.id for s in sites]
        if collection_id:
            for site in sites:
                try:
                    collections = await self.get_collections(site.id)
                except IntegrationError as exc:
                    logger.warning("webflow.site_collections_unreadable", site_id=site.id, error=exc.message)
                    continue
                if any(c.id == collection_id for c in collections):
                    logger.info("webflow.site_auto_detected", site_id=site.id, collection_id=collection_id)
                    return site
            raise AmbiguousSiteError(
                f"Collection ID {collection_id} was not found in any of the {len(sites)} "
                "accessible sites; configure site_id explicitly",
                site_ids=site_ids,
            )

        raise AmbiguousSiteError(
            f"API key can access {len(sites)} sites; configure site_id or collection_id "
            "so the target site can be determined",
            site_ids=site_ids,
        )

    async def auto_detect_site_id(self, collection_id: str | None = None) -> str:
        return (await self.auto_detect_site(collection_id)).id

    async def test_connection(
        self,
        site_id: str | None = None,
        collection_id: str | None = None,
    ) -> WebflowConnectionTest:
        try:
            sites = await self.get_sites()
        except IntegrationError as exc:
            return WebflowConnectionTest(success=False, message=f"Failed to connect to Webflow: {exc.message}")

        if not sites:
            return WebflowConnectionTest(success=False, message="API key is valid but has no accessible sites")

        if site_id:
            site = next((s for s in sites if s.id == site_id), None)
            if site is None:
                return WebflowConnectionTest(
                    success=False,
                    message=f"Site ID {site_id} not found or not accessible with this API key",
                )
        else:
            try:
                site = await self.auto_detect_site(collection_id)
            except AmbiguousSiteError as exc:
                return WebflowConnectionTest(success=False, message=exc.message)

        if collection_id:
            try:
                collections = await self.get_collections(site.id)
            except IntegrationError as exc:
                return WebflowConnectionTest(
                    success=False,
                    message=f"Failed to list collections for site \"{site.name}\": {exc.message}",
                    site_id=site.id,
                    site_name=site.name,
                )
            if not any(c.id == collection_id for c in collections):
                return WebflowConnectionTest(
                    success=False,
                    message=f'Collection ID {collection_id} not found in site "{site.name}"',
                    site_id=site.id,
                    site_name=site.name,
                )

        return WebflowConnectionTest(
            success=True,
            message=f'Successfully connected to site "{site.name}"',
            site_id=site.id,
            site_name=site.name,
        )
