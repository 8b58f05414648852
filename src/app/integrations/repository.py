"""Async repositories for integrations, publish logs and blog posts.

Each repository converts between SQLAlchemy rows (src.app.models.publishing)
and the Pydantic read models in src.app.integrations.schemas. Every method
takes the tenant id and filters on it; a malformed id simply matches nothing.

IntegrationRepository also implements StoredMappingSource, which the field
mapping resolver uses for the tenant-stored mapping tier.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.integrations.mapping import normalize_stored_mappings
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
from src.app.models.publishing import BlogPostModel, IntegrationModel, PublishLogModel

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]

_UPDATABLE_INTEGRATION_FIELDS = {
    "name",
    "status",
    "health_status",
    "config",
    "field_mappings",
    "last_sync",
    "metadata",
}


def _uuid(value: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


# ── Integrations ────────────────────────────────────────────────────────────


class IntegrationRepository:
    """Async CRUD for tenant integrations.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

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
        """Insert an integration. ``config`` must already be encrypted."""
        async for session in self._session_factory():
            model = IntegrationModel(
                tenant_id=uuid.UUID(tenant_id),
                platform=platform.value,
                name=name,
                status=status.value,
                health_status=health_status.value,
                config=config,
                field_mappings=[m.model_dump(mode="json") for m in field_mappings or []],
                metadata_=metadata or {},
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "integration.created",
                tenant_id=tenant_id,
                integration_id=str(model.id),
                platform=platform.value,
            )
            return _model_to_integration(model)

    async def get(self, tenant_id: str, integration_id: str) -> Integration | None:
        tid, iid = _uuid(tenant_id), _uuid(integration_id)
        if tid is None or iid is None:
            return None
        async for session in self._session_factory():
            model = await self._load(session, tid, iid)
            return _model_to_integration(model) if model is not None else None

    async def list_by_tenant(self, tenant_id: str, platform: Platform | None = None) -> list[Integration]:
        tid = _uuid(tenant_id)
        if tid is None:
            return []
        async for session in self._session_factory():
            stmt = select(IntegrationModel).where(IntegrationModel.tenant_id == tid)
            if platform is not None:
                stmt = stmt.where(IntegrationModel.platform == platform.value)
            stmt = stmt.order_by(IntegrationModel.created_at)
            result = await session.execute(stmt)
            return [_model_to_integration(m) for m in result.scalars().all()]

    async def update(self, tenant_id: str, integration_id: str, **changes: Any) -> Integration | None:
        """Apply column changes. Enum values and FieldMapping lists are serialized.

        Raises:
            ValueError: If a change names a column that cannot be updated.
        """
        unknown = set(changes) - _UPDATABLE_INTEGRATION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update integration fields: {sorted(unknown)}")

        tid, iid = _uuid(tenant_id), _uuid(integration_id)
        if tid is None or iid is None:
            return None
        async for session in self._session_factory():
            model = await self._load(session, tid, iid)
            if model is None:
                return None
            for key, value in changes.items():
                if key == "field_mappings":
                    value = [
                        m.model_dump(mode="json") if isinstance(m, FieldMapping) else m for m in value
                    ]
                    model.field_mappings = value
                elif key == "metadata":
                    model.metadata_ = value
                else:
                    setattr(model, key, _enum_value(value))
            await session.commit()
            await session.refresh(model)
            return _model_to_integration(model)

    async def get_stored_mapping(self, tenant_id: str, platform: str) -> list[FieldMapping] | None:
        """Custom mapping of the tenant's active integration for ``platform``."""
        tid = _uuid(tenant_id)
        if tid is None:
            return None
        async for session in self._session_factory():
            stmt = (
                select(IntegrationModel)
                .where(
                    IntegrationModel.tenant_id == tid,
                    IntegrationModel.platform == platform,
                    IntegrationModel.status == IntegrationStatus.ACTIVE.value,
                )
                .order_by(IntegrationModel.updated_at.desc().nullslast(), IntegrationModel.created_at.desc())
            )
            result = await session.execute(stmt)
            for model in result.scalars().all():
                mappings = normalize_stored_mappings(model.field_mappings)
                if mappings:
                    return mappings
            return None

    @staticmethod
    async def _load(session: AsyncSession, tenant_id: uuid.UUID, integration_id: uuid.UUID) -> IntegrationModel | None:
        stmt = select(IntegrationModel).where(
            IntegrationModel.tenant_id == tenant_id,
            IntegrationModel.id == integration_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()


# ── Publish Logs ────────────────────────────────────────────────────────────


class PublishLogRepository:
    """Append-only publish attempt log.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

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
        async for session in self._session_factory():
            model = PublishLogModel(
                tenant_id=uuid.UUID(tenant_id),
                post_id=post_id,
                integration_id=uuid.UUID(integration_id),
                attempt=attempt,
                status=status.value,
                operation=operation,
                external_id=external_id,
                external_url=external_url,
                error_message=error_message,
                error_code=error_code,
                request_metadata=request_metadata or {},
                response_metadata=response_metadata or {},
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_log(model)

    async def next_attempt(self, tenant_id: str, post_id: str, integration_id: str) -> int:
        async for session in self._session_factory():
            stmt = select(func.max(PublishLogModel.attempt)).where(
                PublishLogModel.tenant_id == uuid.UUID(tenant_id),
                PublishLogModel.post_id == post_id,
                PublishLogModel.integration_id == uuid.UUID(integration_id),
            )
            result = await session.execute(stmt)
            return (result.scalar_one_or_none() or 0) + 1

    async def latest(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str,
        statuses: list[PublishStatus] | None = None,
    ) -> PublishLogEntry | None:
        """Most recent entry for the pair, optionally restricted to ``statuses``."""
        async for session in self._session_factory():
            stmt = select(PublishLogModel).where(
                PublishLogModel.tenant_id == uuid.UUID(tenant_id),
                PublishLogModel.post_id == post_id,
                PublishLogModel.integration_id == uuid.UUID(integration_id),
            )
            if statuses:
                stmt = stmt.where(PublishLogModel.status.in_([s.value for s in statuses]))
            stmt = stmt.order_by(PublishLogModel.created_at.desc(), PublishLogModel.attempt.desc()).limit(1)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _model_to_log(model) if model is not None else None

    async def history(
        self,
        tenant_id: str,
        post_id: str,
        integration_id: str | None = None,
        limit: int = 50,
    ) -> list[PublishLogEntry]:
        tid = _uuid(tenant_id)
        if tid is None:
            return []
        async for session in self._session_factory():
            stmt = select(PublishLogModel).where(
                PublishLogModel.tenant_id == tid,
                PublishLogModel.post_id == post_id,
            )
            if integration_id is not None:
                iid = _uuid(integration_id)
                if iid is None:
                    return []
                stmt = stmt.where(PublishLogModel.integration_id == iid)
            stmt = stmt.order_by(PublishLogModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [_model_to_log(m) for m in result.scalars().all()]


# ── Blog Posts ──────────────────────────────────────────────────────────────


class BlogPostRepository:
    """Read access to generated blog posts.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get(self, tenant_id: str, post_id: str) -> BlogPost | None:
        tid, pid = _uuid(tenant_id), _uuid(post_id)
        if tid is None or pid is None:
            return None
        async for session in self._session_factory():
            stmt = select(BlogPostModel).where(
                BlogPostModel.tenant_id == tid,
                BlogPostModel.id == pid,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _model_to_post(model) if model is not None else None


# ── Row Conversion ──────────────────────────────────────────────────────────


def _model_to_integration(model: IntegrationModel) -> Integration:
    return Integration(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        platform=Platform(model.platform),
        name=model.name,
        status=IntegrationStatus(model.status),
        health_status=HealthStatus(model.health_status),
        config=dict(model.config or {}),
        field_mappings=normalize_stored_mappings(model.field_mappings),
        last_sync=model.last_sync,
        metadata=dict(model.metadata_ or {}),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_log(model: PublishLogModel) -> PublishLogEntry:
    return PublishLogEntry(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        post_id=model.post_id,
        integration_id=str(model.integration_id),
        attempt=model.attempt,
        status=PublishStatus(model.status),
        operation=model.operation,
        external_id=model.external_id,
        external_url=model.external_url,
        error_message=model.error_message,
        error_code=model.error_code,
        request_metadata=dict(model.request_metadata or {}),
        response_metadata=dict(model.response_metadata or {}),
        created_at=model.created_at,
    )


def _model_to_post(model: BlogPostModel) -> BlogPost:
    updated: datetime | None = model.updated_at or model.created_at
    return BlogPost(
        post_id=str(model.id),
        title=model.title,
        content=model.content or "",
        excerpt=model.excerpt,
        author=model.author,
        published_at=model.published_at,
        featured_image=model.featured_image,
        tags=list(model.tags or []),
        categories=list(model.categories or []),
        seo_title=model.seo_title,
        seo_description=model.seo_description,
        slug=model.slug,
        updated_at=updated,
        metadata=dict(model.metadata_ or {}),
    )
