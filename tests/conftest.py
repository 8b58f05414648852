"""Shared fixtures for publishing tests.

Provides:
- FakeWebflowAPI: in-process Webflow v2 API served through httpx.MockTransport
- In-memory integration, publish log and blog post repositories
- A Fernet-backed CredentialCipher with a fresh key per test
- A recording sleep so retry backoff never waits
- A PublishingService wired to all of the above, and an API client over it
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.app.core.encryption import CredentialCipher
from src.app.integrations.mapping import FieldMappingResolver, normalize_stored_mappings
from src.app.integrations.providers.webflow import WebflowProvider
from src.app.integrations.registry import ProviderRegistry
from src.app.integrations.schemas import (
    BlogPost,
    FieldMapping,
    HealthStatus,
    Integration,
    IntegrationStatus,
    Platform,
    PublishLogEntry,
    PublishStatus,
)
from src.app.integrations.service import PublishingService

TENANT_ID = "6b1f2c1e-3f0a-4d7e-9a51-0c2d8b7e4f11"
OTHER_TENANT_ID = "0f9e8d7c-6b5a-4c3d-2e1f-0a9b8c7d6e5f"

SITE_ID = "5f0c8c9e1c9d440000e8d8c1"
SITE_B_ID = "5f0c8c9e1c9d440000e8d8c2"
COLLECTION_ID = "64f1c0ffee0123456789abcd"
WEBFLOW_TOKEN = "wf-token-0123456789abcdef0123"


def webflow_field(slug: str, type_: str, required: bool = False) -> dict[str, Any]:
    return {
        "id": f"field-{slug}",
        "slug": slug,
        "displayName": slug.replace("-", " ").title(),
        "type": type_,
        "isRequired": required,
    }


BLOG_FIELDS = [
    webflow_field("name", "PlainText", required=True),
    webflow_field("slug", "PlainText", required=True),
    webflow_field("post-body", "RichText"),
    webflow_field("post-summary", "PlainText"),
    webflow_field("main-image", "Image"),
    webflow_field("publish-date", "DateTime"),
]


# ── Fake Webflow API ─────────────────────────────────────────────────────────


class FakeWebflowAPI:
    """Minimal stateful Webflow Data API v2.

    Knobs:
        site_publish_status: HTTP status returned by POST /sites/{id}/publish.
        create_timeout: Raise a read timeout on item creation.
        create_status: HTTP status returned by item creation (2xx creates).
    """

    def __init__(self) -> None:
        self.sites: list[dict[str, Any]] = [
            {"id": SITE_ID, "displayName": "Acme Blog", "shortName": "acme"},
        ]
        self.collections: dict[str, dict[str, Any]] = {
            COLLECTION_ID: {
                "id": COLLECTION_ID,
                "displayName": "Blog Posts",
                "singularName": "Blog Post",
                "slug": "blog",
                "siteId": SITE_ID,
                "fields": list(BLOG_FIELDS),
            }
        }
        self.items: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.site_publish_status = 202
        self.create_timeout = False
        self.create_status = 202
        self.next_item_id: str | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path_suffix: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path.endswith(path_suffix)
        ]

    def body(self, request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content) if request.content else {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = [p for p in request.url.path.split("/") if p][1:]  # drop "v2"
        method = request.method

        if parts == ["sites"] and method == "GET":
            return httpx.Response(200, json={"sites": self.sites})

        if len(parts) == 3 and parts[0] == "sites" and parts[2] == "collections":
            cols = [c for c in self.collections.values() if c["siteId"] == parts[1]]
            return httpx.Response(200, json={"collections": cols})

        if len(parts) == 3 and parts[0] == "sites" and parts[2] == "publish":
            if self.site_publish_status >= 400:
                return httpx.Response(self.site_publish_status, json={"message": "Internal error"})
            return httpx.Response(self.site_publish_status, json={"publishToWebflowSubdomain": True})

        if len(parts) == 2 and parts[0] == "collections" and method == "GET":
            collection = self.collections.get(parts[1])
            if collection is None:
                return httpx.Response(404, json={"message": "Collection not found"})
            return httpx.Response(200, json=collection)

        if len(parts) == 3 and parts[0] == "collections" and parts[2] == "items" and method == "POST":
            if self.create_timeout:
                raise httpx.ReadTimeout("timed out", request=request)
            if self.create_status >= 400:
                return httpx.Response(self.create_status, json={"message": "Validation failed"})
            payload = self.body(request)
            item_id = self.next_item_id or uuid.uuid4().hex[:24]
            now = datetime.now(timezone.utc).isoformat()
            item = {
                "id": item_id,
                "fieldData": payload.get("fieldData", {}),
                "isDraft": payload.get("isDraft", False),
                "isArchived": payload.get("isArchived", False),
                "createdOn": now,
                "lastUpdated": now,
                "lastPublished": None,
            }
            self.items[item_id] = item
            return httpx.Response(self.create_status, json=item)

        if len(parts) == 4 and parts[0] == "collections" and parts[2] == "items":
            item = self.items.get(parts[3])
            if item is None:
                return httpx.Response(404, json={"message": "Item not found"})
            if method == "GET":
                return httpx.Response(200, json=item)
            if method == "PATCH":
                payload = self.body(request)
                item["fieldData"] = {**item["fieldData"], **payload.get("fieldData", {})}
                if "isDraft" in payload:
                    item["isDraft"] = payload["isDraft"]
                if "isArchived" in payload:
                    item["isArchived"] = payload["isArchived"]
                item["lastUpdated"] = datetime.now(timezone.utc).isoformat()
                return httpx.Response(200, json=item)
            if method == "DELETE":
                del self.items[parts[3]]
                return httpx.Response(204)

        return httpx.Response(404, json={"message": f"Unhandled {method} {request.url.path}"})


@pytest.fixture
def webflow_api() -> FakeWebflowAPI:
    return FakeWebflowAPI()


@pytest.fixture
def webflow_config() -> dict[str, Any]:
    return {"api_token": WEBFLOW_TOKEN, "collection_id": COLLECTION_ID}


# ── Retry sleep ──────────────────────────────────────────────────────────────


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


# ── Blog post ────────────────────────────────────────────────────────────────


def make_post(**overrides: Any) -> BlogPost:
    data: dict[str, Any] = {
        "post_id": "3c2d7a9e-5b1f-4e0a-8c6d-2f4b9a1e7d30",
        "title": "Hello World",
        "content": "<p>First post</p>",
        "excerpt": "A first post",
        "author": "Sam Writer",
        "published_at": datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc),
        "featured_image": "https://cdn.example.com/hello.png",
        "tags": ["news", "launch"],
        "updated_at": datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return BlogPost(**data)


@pytest.fixture
def blog_post() -> BlogPost:
    return make_post()


# ── Credentials ──────────────────────────────────────────────────────────────


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher(CredentialCipher.generate_key())


# ── In-memory repositories ───────────────────────────────────────────────────


class InMemoryIntegrationRepository:
    """IntegrationRepository test double (also a StoredMappingSource)."""

    def __init__(self) -> None:
        self.rows: dict[str, Integration] = {}

    async def create(
        self,
        tenant_id: str,
        platform: Platform,
        name: str,
        config: dict[str, Any],
        field_mappings: list[FieldMapping] | None = None,
        status: IntegrationStatus = IntegrationStatus.ACTIVE,
        health_status: HealthStatus = HealthStatus.HEALTHY,
        metadata: dict[str, Any] | None = None,
    ) -> Integration:
        integration = Integration(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            platform=platform,
            name=name,
            status=status,
            health_status=health_status,
            config=dict(config),
            field_mappings=list(field_mappings or []),
            metadata=metadata or {},
            created_at=datetime.now(timezone.utc),
        )
        self.rows[integration.id] = integration
        return integration

    async def get(self, tenant_id: str, integration_id: str) -> Integration | None:
        row = self.rows.get(integration_id)
        if row is not None and row.tenant_id == tenant_id:
            return row
        return None

    async def list_by_tenant(self, tenant_id: str, platform: Platform | None = None) -> list[Integration]:
        return [
            r
            for r in self.rows.values()
            if r.tenant_id == tenant_id and (platform is None or r.platform == platform)
        ]

    async def update(self, tenant_id: str, integration_id: str, **changes: Any) -> Integration | None:
        row = await self.get(tenant_id, integration_id)
        if row is None:
            return None
        if "field_mappings" in changes:
            changes["field_mappings"] = normalize_stored_mappings(changes["field_mappings"])
        updated = row.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        self.rows[integration_id] = updated
        return updated

    async def get_stored_mapping(self, tenant_id: str, platform: str) -> list[FieldMapping] | None:
        for row in self.rows.values():
            if (
                row.tenant_id == tenant_id
                and row.platform.value == platform
                and row.status == IntegrationStatus.ACTIVE
                and row.field_mappings
            ):
                return row.field_mappings
        return None


class InMemoryPublishLogRepository:
    def __init__(self) -> None:
        self.entries: list[PublishLogEntry] = []

    async def append(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str,
        attempt: int,
        status: PublishStatus,
        operation: str = "publish",
        external_id: str | None = None,
        external_url: str | None = None,
        error_message: str | None = None,
        error_code: str | None = None,
        request_metadata: dict[str, Any] | None = None,
        response_metadata: dict[str, Any] | None = None,
    ) -> PublishLogEntry:
        entry = PublishLogEntry(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            post_id=post_id,
            integration_id=integration_id,
            attempt=attempt,
            status=status,
            operation=operation,
            external_id=external_id,
            external_url=external_url,
            error_message=error_message,
            error_code=error_code,
            request_metadata=request_metadata or {},
            response_metadata=response_metadata or {},
            created_at=datetime.now(timezone.utc),
        )
        self.entries.append(entry)
        return entry

    def _pair(self, tenant_id: str, post_id: str, integration_id: str) -> list[PublishLogEntry]:
        return [
            e
            for e in self.entries
            if e.tenant_id == tenant_id and e.post_id == post_id and e.integration_id == integration_id
        ]

    async def next_attempt(self, tenant_id: str, post_id: str, integration_id: str) -> int:
        return max((e.attempt for e in self._pair(tenant_id, post_id, integration_id)), default=0) + 1

    async def latest(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str,
        statuses: list[PublishStatus] | None = None,
    ) -> PublishLogEntry | None:
        for entry in reversed(self._pair(tenant_id, post_id, integration_id)):
            if not statuses or entry.status in statuses:
                return entry
        return None

    async def history(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str | None = None,
        limit: int = 50,
    ) -> list[PublishLogEntry]:
        rows = [
            e
            for e in reversed(self.entries)
            if e.tenant_id == tenant_id
            and e.post_id == post_id
            and (integration_id is None or e.integration_id == integration_id)
        ]
        return rows[:limit]


class InMemoryBlogPostRepository:
    def __init__(self) -> None:
        self.posts: dict[tuple[str, str], BlogPost] = {}

    def add(self, tenant_id: str, post: BlogPost) -> BlogPost:
        self.posts[(tenant_id, post.post_id)] = post
        return post

    async def get(self, tenant_id: str, post_id: str) -> BlogPost | None:
        return self.posts.get((tenant_id, post_id))


@pytest.fixture
def integration_repo() -> InMemoryIntegrationRepository:
    return InMemoryIntegrationRepository()


@pytest.fixture
def log_repo() -> InMemoryPublishLogRepository:
    return InMemoryPublishLogRepository()


@pytest.fixture
def post_repo() -> InMemoryBlogPostRepository:
    return InMemoryBlogPostRepository()


# ── Service and API ──────────────────────────────────────────────────────────


@pytest.fixture
def registry(webflow_api, no_sleep, integration_repo) -> ProviderRegistry:
    """Registry with a Webflow provider bound to the fake API and the in-memory mapping store."""
    registry = ProviderRegistry()
    registry.register(
        Platform.WEBFLOW,
        lambda: WebflowProvider(
            transport=webflow_api.transport,
            resolver=FieldMappingResolver(store=integration_repo),
            sleep=no_sleep,
        ),
    )
    return registry


@pytest.fixture
def service(registry, integration_repo, log_repo, post_repo, cipher, blog_post) -> PublishingService:
    post_repo.add(TENANT_ID, blog_post)
    return PublishingService(
        registry=registry,
        integrations=integration_repo,
        publish_logs=log_repo,
        posts=post_repo,
        cipher=cipher,
    )


@pytest_asyncio.fixture
async def api_client(service, registry):
    """AsyncClient over the full app (middleware, error handler) with services on app.state."""
    from src.app.main import create_app

    app = create_app()
    app.state.publishing_service = service
    app.state.provider_registry = registry

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Tenant-ID": TENANT_ID},
    ) as client:
        yield client
