"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.app.api.v1 import health, integrations, providers, publishing

API_PREFIX = "/api/v1"

router = APIRouter()

router.include_router(health.router)
router.include_router(providers.router, prefix=API_PREFIX)
router.include_router(integrations.router, prefix=API_PREFIX)
router.include_router(publishing.router, prefix=API_PREFIX)
