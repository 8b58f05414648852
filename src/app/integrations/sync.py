"""On-demand drift detection between a local post and its remote item.

Drift rules:
- titles differ -> "Title differs"
- local updated_at strictly newer than remote last_updated ->
  "Local version is newer than <platform>"
- remote item missing (404) -> not in sync, remote None,
  "<platform> item not found - may have been deleted"
- any other error -> not in sync, "Error checking sync: <message>"

There is no background reconciliation; callers invoke this per item.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from src.app.integrations.errors import IntegrationError, PlatformNotFoundError
from src.app.integrations.schemas import LocalSnapshot, RemoteSnapshot, SyncStatus

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def compare_snapshots(local: LocalSnapshot, remote: RemoteSnapshot, platform_label: str) -> list[str]:
    differences: list[str] = []
    if (remote.title or "") != local.title:
        differences.append("Title differs")
    if local.updated_at and remote.last_updated:
        if _as_utc(local.updated_at) > _as_utc(remote.last_updated):
            differences.append(f"Local version is newer than {platform_label}")
    return differences


async def check_drift(
    fetch_remote: Callable[[], Awaitable[RemoteSnapshot]],
    local: LocalSnapshot,
    platform_label: str,
) -> SyncStatus:
    """Fetch the remote snapshot and compare. Never raises for platform errors."""
    try:
        remote = await fetch_remote()
    except PlatformNotFoundError:
        return SyncStatus(
            in_sync=False,
            local=local,
            remote=None,
            differences=[f"{platform_label} item not found - may have been deleted"],
        )
    except IntegrationError as exc:
        logger.warning("sync.check_failed", platform=platform_label, error=exc.message)
        return SyncStatus(
            in_sync=False,
            local=local,
            remote=None,
            differences=[f"Error checking sync: {exc.message}"],
        )

    differences = compare_snapshots(local, remote, platform_label)
    return SyncStatus(in_sync=not differences, local=local, remote=remote, differences=differences)
