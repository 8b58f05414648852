"""REST API endpoints for tenant integrations.

Provides connect/list/get/disconnect, credential rotation, stored field
mappings, a connection test and schema browsing (sites, collections,
collection fields). Credentials are never returned: config values for
sensitive keys are masked.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_publishing_service, get_tenant
from src.app.core.tenant import TenantContext
from src.app.integrations.schemas import (
    Collection,
    FieldMapping,
    HealthCheck,
    Integration,
    Platform,
    Site,
)

router = APIRouter(prefix="/integrations", tags=["integrations"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class IntegrationResponse(BaseModel):
    """Integration with masked credentials."""

    id: str
    platform: Platform
    name: str
    status: str
    health_status: str
    config: dict[str, Any] = Field(default_factory=dict)
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    last_sync: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Request Schemas ──────────────────────────────────────────────────────────


class ConnectIntegrationRequest(BaseModel):
    """Request body for connecting a new integration."""

    platform: Platform
    name: str = Field(min_length=1, max_length=200)
    config: dict[str, Any]
    field_mappings: list[FieldMapping] = Field(default_factory=list)


class RotateCredentialsRequest(BaseModel):
    """New credential values; merged over the stored config."""

    config: dict[str, Any]


class FieldMappingsRequest(BaseModel):
    """Custom mapping, as a list of rules or a ``{blog_field: target}`` object."""

    field_mappings: list[dict[str, Any]] | dict[str, str]


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _to_response(integration: Integration, service: Any) -> IntegrationResponse:
    return IntegrationResponse(
        id=integration.id,
        platform=integration.platform,
        name=integration.name,
        status=integration.status.value,
        health_status=integration.health_status.value,
        config=service.masked_config(integration),
        field_mappings=integration.field_mappings,
        last_sync=integration.last_sync,
        metadata=integration.metadata,
        created_at=integration.created_at,
        updated_at=integration.updated_at,
    )


# ── Integration Endpoints ────────────────────────────────────────────────────


@router.post("", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def connect_integration(
    body: ConnectIntegrationRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> IntegrationResponse:
    """Verify the credentials with the platform and store the integration."""
    service = get_publishing_service(request)
    integration = await service.connect_integration(
        tenant.tenant_id,
        body.platform,
        body.name,
        body.config,
        field_mappings=body.field_mappings,
    )
    return _to_response(integration, service)


@router.get("", response_model=list[IntegrationResponse])
async def list_integrations(
    request: Request,
    platform: Platform | None = Query(default=None),
    tenant: TenantContext = Depends(get_tenant),
) -> list[IntegrationResponse]:
    service = get_publishing_service(request)
    integrations = await service.list_integrations(tenant.tenant_id, platform)
    return [_to_response(i, service) for i in integrations]


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> IntegrationResponse:
    service = get_publishing_service(request)
    integration = await service.get_integration(tenant.tenant_id, integration_id)
    return _to_response(integration, service)


@router.delete("/{integration_id}", response_model=IntegrationResponse)
async def disconnect_integration(
    integration_id: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> IntegrationResponse:
    """Deactivate the integration and clear its credentials. Publish history is kept."""
    service = get_publishing_service(request)
    integration = await service.disconnect_integration(tenant.tenant_id, integration_id)
    return _to_response(integration, service)


@router.put("/{integration_id}/credentials", response_model=IntegrationResponse)
async def rotate_credentials(
    integration_id: str,
    body: RotateCredentialsRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> IntegrationResponse:
    service = get_publishing_service(request)
    integration = await service.rotate_credentials(tenant.tenant_id, integration_id, body.config)
    return _to_response(integration, service)


@router.put("/{integration_id}/field-mappings", response_model=IntegrationResponse)
async def save_field_mappings(
    integration_id: str,
    body: FieldMappingsRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> IntegrationResponse:
    service = get_publishing_service(request)
    integration = await service.save_field_mappings(tenant.tenant_id, integration_id, body.field_mappings)
    return _to_response(integration, service)


@router.post("/{integration_id}/test", response_model=HealthCheck)
async def test_integration(
    integration_id: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> HealthCheck:
    """Run a live connection check and record the resulting health status."""
    service = get_publishing_service(request)
    return await service.test_integration(tenant.tenant_id, integration_id)


# ── Schema Browsing ──────────────────────────────────────────────────────────


@router.get("/{integration_id}/sites", response_model=list[Site])
async def list_sites(
    integration_id: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> list[Site]:
    service = get_publishing_service(request)
    return await service.list_sites(tenant.tenant_id, integration_id)


@router.get("/{integration_id}/sites/{site_id}/collections", response_model=list[Collection])
async def list_collections(
    integration_id: str,
    site_id: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> list[Collection]:
    service = get_publishing_service(request)
    return await service.list_collections(tenant.tenant_id, integration_id, site_id)


@router.get("/{integration_id}/collections/{collection_id}/fields", response_model=Collection)
async def get_collection_fields(
    integration_id: str,
    collection_id: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
) -> Collection:
    """Collection with its live field schema."""
    service = get_publishing_service(request)
    return await service.get_field_schema(tenant.tenant_id, integration_id, collection_id)
