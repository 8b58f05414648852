"""Publishing persistence models -- integrations, publish logs, blog posts.

All tables are row-level tenant scoped: every query filters on tenant_id.
Unique constraints include tenant_id so one tenant's rows can never collide
with another's.

JSON columns:
- integrations.config: connection config with sensitive keys Fernet-encrypted
- integrations.field_mappings: list of {blog_field, target_field, transform}
- publish_logs.request_metadata / response_metadata: PublishResult details
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class IntegrationModel(Base):
    """A tenant's connection to one external content platform."""

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "platform", "name", name="uq_integrations_tenant_platform_name"),
        Index("ix_integrations_tenant_platform", "tenant_id", "platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default=text("'pending'"))
    health_status: Mapped[str] = mapped_column(
        String(20), default="unknown", server_default=text("'unknown'")
    )
    config: Mapped[dict] = mapped_column(JSON, default=dict, server_default=text("'{}'::json"))
    field_mappings: Mapped[list] = mapped_column(JSON, default=list, server_default=text("'[]'::json"))
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, default=dict, server_default=text("'{}'::json")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class PublishLogModel(Base):
    """Append-only audit row for one publish, update, delete or site publish attempt."""

    __tablename__ = "publish_logs"
    __table_args__ = (
        Index("ix_publish_logs_tenant_post_integration", "tenant_id", "post_id", "integration_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    post_id: Mapped[str] = mapped_column(String(100), nullable=False)
    integration_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("integrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    attempt: Mapped[int] = mapped_column(Integer, default=1, server_default=text("1"))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), default="publish", server_default=text("'publish'"))
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    request_metadata: Mapped[dict] = mapped_column(JSON, default=dict, server_default=text("'{}'::json"))
    response_metadata: Mapped[dict] = mapped_column(JSON, default=dict, server_default=text("'{}'::json"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class BlogPostModel(Base):
    """A generated blog post, the source of every publish."""

    __tablename__ = "blog_posts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_blog_posts_tenant_slug"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", server_default=text("''"))
    excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(String(200), nullable=True)
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    featured_image: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list, server_default=text("'[]'::json"))
    categories: Mapped[list] = mapped_column(JSON, default=list, server_default=text("'[]'::json"))
    seo_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    seo_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, default=dict, server_default=text("'{}'::json")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
