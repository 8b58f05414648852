"""REST API endpoints for publishing blog posts to connected platforms.

Every publish-type endpoint returns the provider's PublishResult with HTTP
200, including partial publishes and platform failures; clients read
``success``, ``published`` and ``error_code``. Request-level problems
(unknown integration, inactive integration, concurrent publish) are 4xx.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from src.app.api.deps import get_publishing_service, get_tenant
from src.app.core.tenant import TenantContext
from src.app.integrations.schemas import (
    LocalSnapshot,
    PublishLogEntry,
    PublishOptions,
    PublishResult,
    SyncStatus,
)

router = APIRouter(prefix="/publishing", tags=["publishing"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class PublishPostRequest(PublishOptions):
    """Request body for publish and update."""

    integration_id: str


class ItemActionRequest(BaseModel):
    """Request body for actions on an already published item."""

    integration_id: str


class SyncCheckRequest(BaseModel):
    """Either ``item_id`` + ``local``, or ``post_id`` (item and local state looked up)."""

    integration_id: str
    item_id: str | None = None
    post_id: str | None = None
    collection_id: str | None = None
    local_title: str | None = None
    local_updated_at: datetime | None = None


class DeleteResponse(BaseModel):
    deleted: bool
    external_id: str
    existed: bool


# ── Publish Endpoints ────────────────────────────────────────────────────────


@router.post("/{post_id}/publish", response_model=PublishResult)
async def publish_post(
    post_id: str,
    body: PublishPostRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> PublishResult:
    service = get_publishing_service(request)
    options = PublishOptions(**body.model_dump(exclude={"integration_id"}))
    return await service.publish(tenant.tenant_id, post_id, body.integration_id, options)


@router.post("/{post_id}/publish-site", response_model=PublishResult)
async def publish_site(
    post_id: str,
    body: ItemActionRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> PublishResult:
    """Make an orphaned draft live by re-running the site publish."""
    service = get_publishing_service(request)
    return await service.publish_site(tenant.tenant_id, post_id, body.integration_id)


@router.post("/{post_id}/update", response_model=PublishResult)
async def update_post(
    post_id: str,
    body: PublishPostRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> PublishResult:
    service = get_publishing_service(request)
    options = PublishOptions(**body.model_dump(exclude={"integration_id"}))
    return await service.update_published(tenant.tenant_id, post_id, body.integration_id, options)


@router.post("/{post_id}/unpublish", response_model=PublishResult)
async def unpublish_post(
    post_id: str,
    body: ItemActionRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> PublishResult:
    """Take the published item offline; it stays on the platform as a draft."""
    service = get_publishing_service(request)
    return await service.change_item_state(tenant.tenant_id, post_id, body.integration_id, "unpublish")


@router.post("/{post_id}/archive", response_model=PublishResult)
async def archive_post(
    post_id: str,
    body: ItemActionRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> PublishResult:
    service = get_publishing_service(request)
    return await service.change_item_state(tenant.tenant_id, post_id, body.integration_id, "archive")


@router.post("/{post_id}/restore", response_model=PublishResult)
async def restore_post(
    post_id: str,
    body: ItemActionRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> PublishResult:
    service = get_publishing_service(request)
    return await service.change_item_state(tenant.tenant_id, post_id, body.integration_id, "restore")


@router.delete("/{post_id}", response_model=DeleteResponse)
async def delete_post(
    post_id: str,
    request: Request,
    integration_id: str = Query(...),
    tenant: TenantContext = Depends(get_tenant),
) -> DeleteResponse:
    service = get_publishing_service(request)
    outcome: dict[str, Any] = await service.delete_published(tenant.tenant_id, post_id, integration_id)
    return DeleteResponse(**outcome)


@router.get("/{post_id}/history", response_model=list[PublishLogEntry])
async def publish_history(
    post_id: str,
    request: Request,
    integration_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    tenant: TenantContext = Depends(get_tenant),
) -> list[PublishLogEntry]:
    service = get_publishing_service(request)
    return await service.get_publish_history(tenant.tenant_id, post_id, integration_id, limit=limit)


# ── Drift ────────────────────────────────────────────────────────────────────


@router.post("/sync-check", response_model=SyncStatus)
async def sync_check(
    body: SyncCheckRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> SyncStatus:
    """Compare local and remote state of one published item."""
    service = get_publishing_service(request)
    local = None
    if body.local_title is not None:
        local = LocalSnapshot(title=body.local_title, updated_at=body.local_updated_at)
    return await service.check_sync(
        tenant.tenant_id,
        body.integration_id,
        item_id=body.item_id,
        local=local,
        post_id=body.post_id,
        collection_id=body.collection_id,
    )
