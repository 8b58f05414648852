"""Webflow two-phase publish: create the CMS item, then publish the site.

State flow (each transition is logged as ``publish.state``):

    ITEM_CREATED -> SITE_PUBLISHED -> DONE
                 -> ORPHANED_DRAFT            (site publish failed)

Rules:
- the create call is made exactly once; a timeout surfaces as
  ItemCreateOutcomeUnknownError because the item may exist remotely
- when the caller wants the post live, site publish is always attempted
  with the new item id
- a failed site publish is a partial success: success=True,
  published=False, item_id set, no external_url; publish_site() is the
  recovery action
- external_url is only synthesized once the site publish succeeded
- unpublish flips the item to draft and republishes the site best effort;
  archive and restore only toggle isArchived
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from src.app.integrations.errors import (
    IntegrationError,
    ItemCreateOutcomeUnknownError,
    PartialPublishError,
    PlatformTimeoutError,
)
from src.app.integrations.providers.webflow.client import WebflowClient
from src.app.integrations.schemas import Collection, PublishRequest, PublishResult, PublishState

logger = structlog.get_logger(__name__)


def build_item_url(site_subdomain: str, collection_slug: str | None, item_slug: str) -> str:
    if collection_slug:
        return f"https://{site_subdomain}.webflow.io/{collection_slug}/{item_slug}"
    return f"https://{site_subdomain}.webflow.io/{item_slug}"


class WebflowPublisher:
    """Runs the create/update and site-publish phases for one item.

    Args:
        client: Configured WebflowClient. Mutations made through it are not retried.
    """

    def __init__(self, client: WebflowClient) -> None:
        self._client = client

    def _log(self, request: PublishRequest, state: PublishState, **details: Any) -> None:
        logger.info(
            "publish.state",
            provider="webflow",
            state=state.value,
            post_id=request.post_id,
            integration_id=request.integration_id,
            **details,
        )

    async def create(
        self,
        request: PublishRequest,
        site_id: str,
        site_subdomain: str,
        collection: Collection,
        fields: dict[str, Any],
        item_slug: str | None = None,
    ) -> PublishResult:
        wants_live = request.wants_live
        try:
            item = await self._client.create_item(collection.id, fields, is_draft=not wants_live)
        except PlatformTimeoutError as exc:
            raise ItemCreateOutcomeUnknownError(
                f"Creating the item in collection {collection.id} timed out; it may already exist. "
                "Check the collection before publishing again."
            ) from exc

        item_id = str(item["id"])
        self._log(request, PublishState.ITEM_CREATED, item_id=item_id, collection_id=collection.id)
        return await self._go_live(
            request, item_id, site_id, site_subdomain, collection, fields, wants_live, item_slug
        )

    async def update(
        self,
        request: PublishRequest,
        item_id: str,
        site_id: str,
        site_subdomain: str,
        collection: Collection,
        fields: dict[str, Any],
        item_slug: str | None = None,
    ) -> PublishResult:
        wants_live = request.wants_live
        await self._client.update_item(collection.id, item_id, fields, is_draft=not wants_live)
        self._log(request, PublishState.ITEM_CREATED, item_id=item_id, collection_id=collection.id, update=True)
        return await self._go_live(
            request, item_id, site_id, site_subdomain, collection, fields, wants_live, item_slug
        )

    async def _go_live(
        self,
        request: PublishRequest,
        item_id: str,
        site_id: str,
        site_subdomain: str,
        collection: Collection,
        fields: dict[str, Any],
        wants_live: bool,
        item_slug: str | None = None,
    ) -> PublishResult:
        # the post slug, whatever the collection calls its slug field
        slug = item_slug or fields.get("slug") or item_id
        url = build_item_url(site_subdomain, collection.slug, str(slug))
        metadata: dict[str, Any] = {
            "site_id": site_id,
            "collection_id": collection.id,
            "fields": sorted(fields),
        }

        if not wants_live:
            self._log(request, PublishState.DONE, item_id=item_id, draft=True)
            return PublishResult(
                success=True,
                published=False,
                item_id=item_id,
                state=PublishState.DONE,
                metadata={**metadata, "is_draft": True},
            )

        try:
            await self._client.publish_site(site_id, [item_id])
        except IntegrationError as exc:
            partial = PartialPublishError(
                item_id, f"Item {item_id} was created but the site publish failed: {exc.message}"
            )
            logger.warning(
                "publish.state",
                provider="webflow",
                state=PublishState.ORPHANED_DRAFT.value,
                post_id=request.post_id,
                item_id=item_id,
                site_id=site_id,
                error=exc.message,
            )
            return PublishResult(
                success=True,
                published=False,
                item_id=item_id,
                error=partial.message,
                error_code=partial.error_code,
                state=PublishState.ORPHANED_DRAFT,
                metadata={
                    **metadata,
                    "recovery": "publish_site",
                    "pending_url": url,
                    "publish_error": exc.to_dict(),
                },
            )

        self._log(request, PublishState.SITE_PUBLISHED, item_id=item_id, site_id=site_id)
        self._log(request, PublishState.DONE, item_id=item_id, url=url)
        return PublishResult(
            success=True,
            published=True,
            item_id=item_id,
            external_url=url,
            published_at=datetime.now(timezone.utc),
            state=PublishState.DONE,
            metadata=metadata,
        )

    async def publish_site(self, site_id: str, item_ids: list[str]) -> PublishResult:
        """Recovery action for orphaned drafts: re-run only the site publish."""
        try:
            await self._client.publish_site(site_id, item_ids)
        except IntegrationError as exc:
            logger.warning("webflow.site_publish_retry_failed", site_id=site_id, item_ids=item_ids, error=exc.message)
            return PublishResult(
                success=False,
                published=False,
                item_id=item_ids[0] if len(item_ids) == 1 else None,
                error=exc.message,
                error_code="PUBLISH_SITE_ERROR",
                state=PublishState.ORPHANED_DRAFT,
                metadata={**exc.to_dict(), "site_id": site_id, "item_ids": item_ids},
            )

        return PublishResult(
            success=True,
            published=True,
            item_id=item_ids[0] if len(item_ids) == 1 else None,
            published_at=datetime.now(timezone.utc),
            state=PublishState.DONE,
            metadata={"site_id": site_id, "item_ids": item_ids},
        )

    async def unpublish(self, item_id: str, collection_id: str, site_id: str | None) -> PublishResult:
        """Move a live item back to draft, then republish the site so it drops off.

        The site publish is best effort: the item is a draft either way and the
        next site publish removes it from the live site.
        """
        item = await self._client.update_item(collection_id, item_id, is_draft=True)
        metadata: dict[str, Any] = {
            "site_id": site_id,
            "collection_id": collection_id,
            "is_draft": bool(item.get("isDraft", True)),
        }
        if site_id:
            try:
                await self._client.publish_site(site_id)
            except IntegrationError as exc:
                logger.warning(
                    "webflow.unpublish_site_publish_failed",
                    item_id=item_id,
                    site_id=site_id,
                    error=exc.message,
                )
                metadata["site_publish_error"] = exc.to_dict()
        else:
            logger.warning("webflow.unpublish_without_site", item_id=item_id)
        logger.info("webflow.item_unpublished", item_id=item_id, collection_id=collection_id)
        return PublishResult(
            success=True,
            published=False,
            item_id=item_id,
            state=PublishState.DONE,
            metadata=metadata,
        )

    async def set_archived(self, item_id: str, collection_id: str, archived: bool) -> PublishResult:
        """Archive (hide) or restore an item. Archived items keep their content."""
        item = await self._client.update_item(collection_id, item_id, is_archived=archived)
        logger.info(
            "webflow.item_archived" if archived else "webflow.item_restored",
            item_id=item_id,
            collection_id=collection_id,
        )
        return PublishResult(
            success=True,
            published=not archived and not item.get("isDraft", False),
            item_id=item_id,
            state=PublishState.DONE,
            metadata={"collection_id": collection_id, "is_archived": bool(item.get("isArchived", archived))},
        )
