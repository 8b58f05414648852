"""Create publishing tables: integrations, publish_logs, blog_posts.

Revision ID: 001_publishing_tables
Revises:
Create Date: 2026-10-19

- integrations: one row per tenant connection to a CMS platform; config
  JSON holds Fernet-encrypted credentials
- publish_logs: append-only audit of publish/update/delete/site-publish
  attempts, cascading with their integration
- blog_posts: generated posts that are the source of every publish

Every table carries tenant_id; unique constraints and lookup indexes lead
with it.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_publishing_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _json_column(name: str, default: str = "'{}'::json") -> sa.Column:
    return sa.Column(name, sa.JSON(), server_default=sa.text(default), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── integrations ────────────────────────────────────────────────────

    op.create_table(
        "integrations",
        _id_column(),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("health_status", sa.String(20), server_default=sa.text("'unknown'"), nullable=False),
        _json_column("config"),
        _json_column("field_mappings", "'[]'::json"),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        _json_column("metadata"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "platform", "name", name="uq_integrations_tenant_platform_name"),
    )
    op.create_index("ix_integrations_tenant_platform", "integrations", ["tenant_id", "platform"])

    # ── publish_logs ────────────────────────────────────────────────────

    op.create_table(
        "publish_logs",
        _id_column(),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("post_id", sa.String(100), nullable=False),
        sa.Column(
            "integration_id",
            UUID(as_uuid=True),
            sa.ForeignKey("integrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attempt", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("operation", sa.String(20), server_default=sa.text("'publish'"), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("external_url", sa.String(2048), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        _json_column("request_metadata"),
        _json_column("response_metadata"),
        _created_at(),
    )
    op.create_index(
        "ix_publish_logs_tenant_post_integration",
        "publish_logs",
        ["tenant_id", "post_id", "integration_id"],
    )

    # ── blog_posts ──────────────────────────────────────────────────────

    op.create_table(
        "blog_posts",
        _id_column(),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("content", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("author", sa.String(200), nullable=True),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("featured_image", sa.String(2048), nullable=True),
        _json_column("tags", "'[]'::json"),
        _json_column("categories", "'[]'::json"),
        sa.Column("seo_title", sa.String(500), nullable=True),
        sa.Column("seo_description", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        _json_column("metadata"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "slug", name="uq_blog_posts_tenant_slug"),
    )


def downgrade() -> None:
    op.drop_table("blog_posts")
    op.drop_index("ix_publish_logs_tenant_post_integration", table_name="publish_logs")
    op.drop_table("publish_logs")
    op.drop_index("ix_integrations_tenant_platform", table_name="integrations")
    op.drop_table("integrations")
