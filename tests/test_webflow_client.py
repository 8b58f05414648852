"""Tests for the Webflow HTTP client and schema introspection.

Covers request shape (auth header, item payload), typed error mapping for
non-2xx/timeouts/transport failures, payload conversion into Site /
Collection / Field, and site auto-detection across one or many sites.
"""

from __future__ import annotations

import httpx
import pytest

from conftest import COLLECTION_ID, SITE_B_ID, SITE_ID, WEBFLOW_TOKEN
from src.app.integrations.errors import (
    AmbiguousSiteError,
    IntegrationConnectionError,
    PlatformAPIError,
    PlatformAuthError,
    PlatformNotFoundError,
    PlatformTimeoutError,
)
from src.app.integrations.providers.webflow import WebflowClient, WebflowSchemaClient
from src.app.integrations.schemas import FieldType


def _client(transport: httpx.AsyncBaseTransport) -> WebflowClient:
    return WebflowClient(api_token=WEBFLOW_TOKEN, transport=transport)


def _static(status: int, json: dict | None = None) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status, json=json or {}))


# ── Client ───────────────────────────────────────────────────────────────────


class TestWebflowClient:
    async def test_requests_carry_bearer_token(self, webflow_api):
        sites = await _client(webflow_api.transport).list_sites()

        assert [s["id"] for s in sites] == [SITE_ID]
        request = webflow_api.requests[0]
        assert request.headers["Authorization"] == f"Bearer {WEBFLOW_TOKEN}"
        assert str(request.url) == "https://api.webflow.com/v2/sites"

    async def test_create_item_sends_field_data(self, webflow_api):
        item = await _client(webflow_api.transport).create_item(
            COLLECTION_ID, {"name": "Hi", "slug": "hi"}, is_draft=True
        )

        body = webflow_api.body(webflow_api.calls("POST", "/items")[0])
        assert body == {"fieldData": {"name": "Hi", "slug": "hi"}, "isDraft": True, "isArchived": False}
        assert item["id"] in webflow_api.items

    async def test_publish_site_sends_item_ids(self, webflow_api):
        await _client(webflow_api.transport).publish_site(SITE_ID, ["abc"])

        body = webflow_api.body(webflow_api.calls("POST", "/publish")[0])
        assert body == {"publishToWebflowSubdomain": True, "itemIds": ["abc"]}

    async def test_delete_returns_empty_on_204(self, webflow_api):
        client = _client(webflow_api.transport)
        item = await client.create_item(COLLECTION_ID, {"name": "Hi"})

        assert await client.delete_item(COLLECTION_ID, item["id"]) is None
        assert webflow_api.items == {}

    async def test_404_is_not_found(self, webflow_api):
        with pytest.raises(PlatformNotFoundError) as exc_info:
            await _client(webflow_api.transport).get_item(COLLECTION_ID, "missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.retryable is False

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failures(self, status):
        with pytest.raises(PlatformAuthError):
            await _client(_static(status, {"message": "Invalid token"})).list_sites()

    async def test_server_error_is_retryable_api_error(self):
        with pytest.raises(PlatformAPIError) as exc_info:
            await _client(_static(503, {"message": "Unavailable"})).list_sites()
        assert exc_info.value.retryable is True
        assert "Unavailable" in exc_info.value.message

    async def test_timeout_is_typed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(PlatformTimeoutError):
            await _client(httpx.MockTransport(handler)).list_sites()

    async def test_transport_failure_is_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(IntegrationConnectionError, match="Could not reach webflow"):
            await _client(httpx.MockTransport(handler)).list_sites()


# ── Schema ───────────────────────────────────────────────────────────────────


def _schema(webflow_api, no_sleep) -> WebflowSchemaClient:
    return WebflowSchemaClient(_client(webflow_api.transport), sleep=no_sleep)


def _add_second_site(webflow_api, move_collection: bool = False) -> None:
    webflow_api.sites.append({"id": SITE_B_ID, "displayName": "Acme Docs", "shortName": "acme-docs"})
    if move_collection:
        webflow_api.collections[COLLECTION_ID]["siteId"] = SITE_B_ID


class TestWebflowSchema:
    async def test_collection_fields_are_mapped_to_field_types(self, webflow_api, no_sleep):
        collection = await _schema(webflow_api, no_sleep).get_collection(COLLECTION_ID)

        types = {f.slug: f.type for f in collection.fields}
        assert collection.slug == "blog"
        assert collection.site_id == SITE_ID
        assert types == {
            "name": FieldType.TEXT,
            "slug": FieldType.TEXT,
            "post-body": FieldType.RICH_TEXT,
            "post-summary": FieldType.TEXT,
            "main-image": FieldType.IMAGE,
            "publish-date": FieldType.DATE,
        }
        name = collection.fields[0]
        assert name.required is True
        assert name.native_type == "PlainText"

    async def test_sites_are_converted(self, webflow_api, no_sleep):
        sites = await _schema(webflow_api, no_sleep).get_sites()
        assert sites[0].name == "Acme Blog"
        assert sites[0].short_name == "acme"

    async def test_reads_are_retried(self, webflow_api, no_sleep):
        responses = iter([httpx.Response(502, json={}), httpx.Response(200, json={"sites": webflow_api.sites})])
        transport = httpx.MockTransport(lambda request: next(responses))

        sites = await WebflowSchemaClient(_client(transport), sleep=no_sleep).get_sites()

        assert [s.id for s in sites] == [SITE_ID]
        assert no_sleep.delays == [1.0]

    async def test_single_site_wins_regardless_of_hint(self, webflow_api, no_sleep):
        site = await _schema(webflow_api, no_sleep).auto_detect_site("not-a-collection")
        assert site.id == SITE_ID

    async def test_collection_hint_picks_owning_site(self, webflow_api, no_sleep):
        _add_second_site(webflow_api, move_collection=True)

        site = await _schema(webflow_api, no_sleep).auto_detect_site(COLLECTION_ID)

        assert site.id == SITE_B_ID
        assert site.short_name == "acme-docs"

    async def test_multiple_sites_without_hint_is_ambiguous(self, webflow_api, no_sleep):
        _add_second_site(webflow_api)

        with pytest.raises(AmbiguousSiteError) as exc_info:
            await _schema(webflow_api, no_sleep).auto_detect_site()

        assert exc_info.value.site_ids == [SITE_ID, SITE_B_ID]

    async def test_hint_found_nowhere_is_ambiguous(self, webflow_api, no_sleep):
        _add_second_site(webflow_api)

        with pytest.raises(AmbiguousSiteError, match="not found in any"):
            await _schema(webflow_api, no_sleep).auto_detect_site("ffffffffffffffffffffffff")

    async def test_no_sites(self, webflow_api, no_sleep):
        webflow_api.sites.clear()
        with pytest.raises(AmbiguousSiteError, match="no accessible sites"):
            await _schema(webflow_api, no_sleep).auto_detect_site(COLLECTION_ID)


class TestSchemaConnectionTest:
    async def test_success_names_site(self, webflow_api, no_sleep):
        result = await _schema(webflow_api, no_sleep).test_connection(collection_id=COLLECTION_ID)

        assert result.success is True
        assert result.message == 'Successfully connected to site "Acme Blog"'
        assert result.site_id == SITE_ID

    async def test_unknown_site_id(self, webflow_api, no_sleep):
        result = await _schema(webflow_api, no_sleep).test_connection(site_id=SITE_B_ID)

        assert result.success is False
        assert SITE_B_ID in result.message

    async def test_collection_missing_from_site(self, webflow_api, no_sleep):
        result = await _schema(webflow_api, no_sleep).test_connection(
            site_id=SITE_ID, collection_id="ffffffffffffffffffffffff"
        )

        assert result.success is False
        assert result.message.startswith("Collection ID ffffffffffffffffffffffff not found")

    async def test_rejected_token(self, no_sleep):
        client = WebflowSchemaClient(_client(_static(401, {"message": "Invalid token"})), sleep=no_sleep)

        result = await client.test_connection()

        assert result.success is False
        assert result.message.startswith("Failed to connect to Webflow")
