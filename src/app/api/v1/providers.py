"""Provider discovery endpoint -- platforms and the config each one needs."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from src.app.api.deps import get_provider_registry

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("")
async def list_providers(request: Request) -> list[dict[str, Any]]:
    """Registered providers with their config field declarations."""
    registry = get_provider_registry(request)
    return registry.describe_all()
