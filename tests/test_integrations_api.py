"""Integration tests for the integrations and providers API endpoints.

Runs the full app (tenant middleware, error handler) over ASGITransport
with the in-memory PublishingService on app.state. Covers connect/list/
get/disconnect, credential rotation, field mappings, connection tests,
schema browsing, tenant scoping and error status mapping.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import COLLECTION_ID, OTHER_TENANT_ID, SITE_ID, WEBFLOW_TOKEN
from src.app.config import Settings
from src.app.integrations.registry import create_default_registry


async def _connect(client: AsyncClient, config: dict, name: str = "Main blog") -> dict:
    response = await client.post(
        "/api/v1/integrations",
        json={"platform": "webflow", "name": name, "config": config},
    )
    assert response.status_code == 201, response.text
    return response.json()


# ── Middleware and Wiring ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_missing_tenant_header(api_client):
    """Tenant-scoped routes require X-Tenant-ID."""
    response = await api_client.get("/api/v1/integrations", headers={"X-Tenant-ID": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing X-Tenant-ID header"


@pytest.mark.asyncio
async def test_non_uuid_tenant_header(api_client):
    response = await api_client.get("/api/v1/integrations", headers={"X-Tenant-ID": "acme"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_service_not_initialized():
    """Without lifespan startup the publishing routes answer 503."""
    from src.app.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(
            "/api/v1/integrations",
            headers={"X-Tenant-ID": "6b1f2c1e-3f0a-4d7e-9a51-0c2d8b7e4f11"},
        )
        health = await client.get("/health")

    assert response.status_code == 503
    assert response.json()["detail"] == "Publishing service not initialized"
    assert health.status_code == 200
    assert health.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_list_providers_skips_tenant():
    """GET /api/v1/providers -> registered providers, no tenant header needed."""
    from src.app.main import create_app

    app = create_app()
    app.state.provider_registry = create_default_registry(Settings())
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/providers")

    assert response.status_code == 200
    providers = {p["platform"]: p for p in response.json()}
    assert set(providers) == {"webflow", "wordpress", "shopify"}
    assert providers["webflow"]["supports_site_publish"] is True
    assert providers["wordpress"]["supports_site_publish"] is False
    keys = [f["key"] for f in providers["webflow"]["config_fields"]]
    assert keys == ["api_token", "collection_id", "site_id"]


@pytest.mark.asyncio
async def test_metrics_endpoint(api_client):
    """/metrics is served without a tenant and exposes the HTTP counters."""
    await api_client.get("/health")

    response = await api_client.get("/metrics", headers={"X-Tenant-ID": ""})

    assert response.status_code == 200
    assert "http_requests_total" in response.text


# ── Integration CRUD ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_connect_masks_credentials(api_client, webflow_config):
    """POST /api/v1/integrations -> 201, token never returned in clear."""
    data = await _connect(api_client, webflow_config)

    assert data["platform"] == "webflow"
    assert data["status"] == "active"
    assert data["health_status"] == "healthy"
    assert data["config"]["collection_id"] == COLLECTION_ID
    assert data["config"]["api_token"].startswith(WEBFLOW_TOKEN[:4])
    assert WEBFLOW_TOKEN not in str(data)


@pytest.mark.asyncio
async def test_connect_invalid_config_is_422(api_client):
    response = await api_client.post(
        "/api/v1/integrations",
        json={"platform": "webflow", "name": "Bad", "config": {"api_token": "short"}},
    )

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error_code"] == "CONFIG_INVALID"
    assert set(detail["errors"]) == {"api_token", "collection_id"}


@pytest.mark.asyncio
async def test_connect_unregistered_platform_is_400(api_client, webflow_config):
    response = await api_client.post(
        "/api/v1/integrations",
        json={"platform": "shopify", "name": "Store", "config": webflow_config},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error_code"] == "UNKNOWN_PROVIDER"


@pytest.mark.asyncio
async def test_connect_rejected_by_platform_is_502(api_client, webflow_api, webflow_config):
    webflow_api.sites.clear()

    response = await api_client.post(
        "/api/v1/integrations",
        json={"platform": "webflow", "name": "Main blog", "config": webflow_config},
    )

    assert response.status_code == 502
    assert response.json()["detail"]["reason"] == "IntegrationConnectionError"


@pytest.mark.asyncio
async def test_list_and_get(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)

    listed = await api_client.get("/api/v1/integrations", params={"platform": "webflow"})
    fetched = await api_client.get(f"/api/v1/integrations/{created['id']}")

    assert [i["id"] for i in listed.json()] == [created["id"]]
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Main blog"


@pytest.mark.asyncio
async def test_other_tenant_cannot_see_integration(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)
    other = {"X-Tenant-ID": OTHER_TENANT_ID}

    listed = await api_client.get("/api/v1/integrations", headers=other)
    fetched = await api_client.get(f"/api/v1/integrations/{created['id']}", headers=other)

    assert listed.json() == []
    assert fetched.status_code == 404
    assert fetched.json()["detail"]["error_code"] == "INTEGRATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_disconnect(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)

    response = await api_client.delete(f"/api/v1/integrations/{created['id']}")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "inactive"
    assert "api_token" not in data["config"]


@pytest.mark.asyncio
async def test_rotate_credentials(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)
    new_token = "wf-token-rotated-000000000000"

    response = await api_client.put(
        f"/api/v1/integrations/{created['id']}/credentials",
        json={"config": {"api_token": new_token}},
    )

    assert response.status_code == 200
    assert response.json()["config"]["api_token"].endswith(new_token[-4:])


@pytest.mark.asyncio
async def test_save_field_mappings_object_form(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)

    response = await api_client.put(
        f"/api/v1/integrations/{created['id']}/field-mappings",
        json={"field_mappings": {"title": "name", "content": "post-body"}},
    )

    assert response.status_code == 200
    mappings = {m["blog_field"]: m["target_field"] for m in response.json()["field_mappings"]}
    assert mappings == {"title": "name", "content": "post-body"}


@pytest.mark.asyncio
async def test_connection_test(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)

    response = await api_client.post(f"/api/v1/integrations/{created['id']}/test")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ── Schema Browsing ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_schema_browsing(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)
    base = f"/api/v1/integrations/{created['id']}"

    sites = await api_client.get(f"{base}/sites")
    collections = await api_client.get(f"{base}/sites/{SITE_ID}/collections")
    fields = await api_client.get(f"{base}/collections/{COLLECTION_ID}/fields")

    assert [s["id"] for s in sites.json()] == [SITE_ID]
    assert [c["slug"] for c in collections.json()] == ["blog"]
    assert {f["slug"]: f["type"] for f in fields.json()["fields"]}["post-body"] == "rich-text"


@pytest.mark.asyncio
async def test_schema_browsing_on_inactive_integration_is_409(api_client, webflow_config):
    created = await _connect(api_client, webflow_config)
    await api_client.delete(f"/api/v1/integrations/{created['id']}")

    response = await api_client.get(f"/api/v1/integrations/{created['id']}/sites")

    assert response.status_code == 409
    assert response.json()["detail"]["error_code"] == "INTEGRATION_INACTIVE"
