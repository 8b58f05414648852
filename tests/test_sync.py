"""Tests for on-demand drift detection."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import COLLECTION_ID
from src.app.integrations.errors import PlatformAPIError, PlatformNotFoundError
from src.app.integrations.providers.webflow import WebflowProvider
from src.app.integrations.schemas import LocalSnapshot, RemoteSnapshot
from src.app.integrations.sync import check_drift, compare_snapshots

EARLY = datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc)
LATE = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


def _remote(**overrides) -> RemoteSnapshot:
    data = {"title": "Hello World", "last_updated": LATE}
    data.update(overrides)
    return RemoteSnapshot(**data)


# ── compare_snapshots ────────────────────────────────────────────────────────


class TestCompareSnapshots:
    def test_identical_is_in_sync(self):
        local = LocalSnapshot(title="Hello World", updated_at=EARLY)
        assert compare_snapshots(local, _remote(), "Webflow") == []

    def test_title_differs(self):
        local = LocalSnapshot(title="Hello There", updated_at=EARLY)
        assert compare_snapshots(local, _remote(), "Webflow") == ["Title differs"]

    def test_local_newer(self):
        local = LocalSnapshot(title="Hello World", updated_at=LATE)
        assert compare_snapshots(local, _remote(last_updated=EARLY), "Webflow") == [
            "Local version is newer than Webflow"
        ]

    def test_equal_timestamps_are_not_newer(self):
        local = LocalSnapshot(title="Hello World", updated_at=LATE)
        assert compare_snapshots(local, _remote(), "Webflow") == []

    def test_naive_local_time_is_utc(self):
        local = LocalSnapshot(title="Hello World", updated_at=datetime(2026, 1, 15, 11, 0))
        assert compare_snapshots(local, _remote(), "Webflow") == ["Local version is newer than Webflow"]

    def test_both_differences_reported(self):
        local = LocalSnapshot(title="Edited", updated_at=LATE)
        assert compare_snapshots(local, _remote(last_updated=EARLY), "WordPress") == [
            "Title differs",
            "Local version is newer than WordPress",
        ]


# ── check_drift ──────────────────────────────────────────────────────────────


class TestCheckDrift:
    async def test_missing_remote_is_not_in_sync(self):
        async def fetch():
            raise PlatformNotFoundError()

        status = await check_drift(fetch, LocalSnapshot(title="Hello World"), "Webflow")

        assert status.in_sync is False
        assert status.remote is None
        assert status.differences == ["Webflow item not found - may have been deleted"]

    async def test_other_errors_are_reported_not_raised(self):
        async def fetch():
            raise PlatformAPIError(500, {"message": "Internal error"})

        status = await check_drift(fetch, LocalSnapshot(title="Hello World"), "Webflow")

        assert status.in_sync is False
        assert status.differences[0].startswith("Error checking sync: ")

    async def test_in_sync(self):
        async def fetch():
            return _remote()

        status = await check_drift(fetch, LocalSnapshot(title="Hello World", updated_at=EARLY), "Webflow")

        assert status.in_sync is True
        assert status.remote.title == "Hello World"


# ── Provider ─────────────────────────────────────────────────────────────────


@pytest.fixture
def provider(webflow_api, no_sleep) -> WebflowProvider:
    return WebflowProvider(transport=webflow_api.transport, sleep=no_sleep)


class TestWebflowCheckSync:
    async def test_deleted_item(self, provider, webflow_config):
        status = await provider.check_sync(webflow_config, "gone", LocalSnapshot(title="Hello World"))

        assert status.in_sync is False
        assert status.differences == ["Webflow item not found - may have been deleted"]

    async def test_remote_title_changed(self, provider, webflow_api, webflow_config):
        webflow_api.items["abc"] = {
            "id": "abc",
            "fieldData": {"name": "Edited in Webflow"},
            "isDraft": False,
            "lastUpdated": "2026-01-15T10:00:00.000Z",
        }

        status = await provider.check_sync(
            webflow_config, "abc", LocalSnapshot(title="Hello World", updated_at=EARLY), COLLECTION_ID
        )

        assert status.in_sync is False
        assert status.differences == ["Title differs"]
        assert status.remote.title == "Edited in Webflow"
        assert status.remote.last_updated == LATE
