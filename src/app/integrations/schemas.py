"""Pydantic schemas for the content publishing layer.

Defines all structured types shared by providers, the mapping resolver,
the publishing service and the HTTP API:
- Enums: Platform, IntegrationStatus, HealthStatus, PublishStatus, FieldType,
  TransformType, ConfigFieldType, BlogField, MappingTier, PublishState
- Remote schema mirrors: Site, Field, Collection
- Mapping: FieldTransform, FieldMapping, MappingResolution
- Provider contract payloads: ConfigField, ValidationResult, ConnectionResult,
  HealthCheck, BlogPost, PublishRequest, PublishOptions, PublishResult,
  RemoteItemStatus
- Drift: LocalSnapshot, RemoteSnapshot, SyncStatus
- Persistence reads: Integration, PublishLogEntry
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field as PydanticField


# ── Enums ───────────────────────────────────────────────────────────────────


class Platform(str, Enum):
    """External content platforms with a registered provider."""

    WEBFLOW = "webflow"
    WORDPRESS = "wordpress"
    SHOPIFY = "shopify"


class IntegrationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    PENDING = "pending"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"
    UNKNOWN = "unknown"


class PublishStatus(str, Enum):
    """Lifecycle of a publish log entry and of a remote item."""

    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SYNCED = "synced"


class FieldType(str, Enum):
    """Platform-neutral field types. Native names are mapped onto these."""

    TEXT = "text"
    RICH_TEXT = "rich-text"
    IMAGE = "image"
    DATE = "date"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OPTION = "option"
    MULTI_OPTION = "multi-option"
    FILE = "file"
    LINK = "link"
    REFERENCE = "reference"


class TransformType(str, Enum):
    NONE = "none"
    HTML_TO_MARKDOWN = "html-to-markdown"
    MARKDOWN_TO_HTML = "markdown-to-html"
    DATE_FORMAT = "date-format"
    CUSTOM = "custom"


class ConfigFieldType(str, Enum):
    TEXT = "text"
    PASSWORD = "password"
    URL = "url"
    SELECT = "select"
    MULTISELECT = "multiselect"


class BlogField(str, Enum):
    """Blog post attributes that can be mapped onto a platform field."""

    TITLE = "title"
    CONTENT = "content"
    EXCERPT = "excerpt"
    AUTHOR = "author"
    PUBLISHED_AT = "published_at"
    FEATURED_IMAGE = "featured_image"
    TAGS = "tags"
    CATEGORIES = "categories"
    SEO_TITLE = "seo_title"
    SEO_DESCRIPTION = "seo_description"
    SLUG = "slug"


class MappingTier(str, Enum):
    """Which resolution tier produced the mappings used for a publish."""

    REQUEST = "request"
    STORED = "stored"
    AUTO_DETECTED = "auto_detected"
    DEFAULT = "default"


class PublishState(str, Enum):
    """States of the publish protocol, in order."""

    START = "start"
    SCHEMA_FETCHED = "schema_fetched"
    FIELDS_RESOLVED = "fields_resolved"
    ITEM_CREATED = "item_created"
    SITE_PUBLISHED = "site_published"
    ORPHANED_DRAFT = "orphaned_draft"
    DONE = "done"
    FAILED = "failed"


# ── Remote Schema ───────────────────────────────────────────────────────────


class Site(BaseModel):
    id: str
    name: str
    short_name: str | None = None
    url: str | None = None
    metadata: dict[str, Any] = PydanticField(default_factory=dict)


class Field(BaseModel):
    """A single field in a remote collection schema."""

    id: str
    name: str
    slug: str
    type: FieldType = FieldType.TEXT
    native_type: str | None = None
    required: bool = False
    options: dict[str, Any] = PydanticField(default_factory=dict)


class Collection(BaseModel):
    id: str
    name: str
    slug: str
    site_id: str | None = None
    fields: list[Field] = PydanticField(default_factory=list)

    def field_slugs(self) -> list[str]:
        return [f.slug for f in self.fields]


# ── Field Mapping ───────────────────────────────────────────────────────────


class FieldTransform(BaseModel):
    type: TransformType = TransformType.NONE
    options: dict[str, Any] = PydanticField(default_factory=dict)


class FieldMapping(BaseModel):
    """Rule translating one blog attribute into one target platform field."""

    blog_field: BlogField
    target_field: str
    transform: FieldTransform | None = None


class MappingResolution(BaseModel):
    """Outcome of mapping resolution against a live schema."""

    mappings: list[FieldMapping] = PydanticField(default_factory=list)
    tier: MappingTier
    dropped: list[FieldMapping] = PydanticField(default_factory=list)


# ── Provider Contract Payloads ──────────────────────────────────────────────


class ConfigFieldValidation(BaseModel):
    pattern: str | None = None
    min_length: int | None = None
    max_length: int | None = None


class ConfigField(BaseModel):
    """Declares one connection config key a provider needs."""

    key: str
    label: str
    type: ConfigFieldType = ConfigFieldType.TEXT
    required: bool = False
    description: str | None = None
    placeholder: str | None = None
    options: list[dict[str, str]] = PydanticField(default_factory=list)
    validation: ConfigFieldValidation | None = None


class ValidationResult(BaseModel):
    valid: bool
    errors: dict[str, str] = PydanticField(default_factory=dict)


class ConnectionResult(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = PydanticField(default_factory=dict)


class HealthCheck(BaseModel):
    status: HealthStatus
    message: str
    last_checked: datetime = PydanticField(default_factory=lambda: datetime.now(timezone.utc))
    details: dict[str, Any] = PydanticField(default_factory=dict)


class BlogPost(BaseModel):
    """A generated blog post as read from the local store."""

    post_id: str
    title: str
    content: str = ""
    excerpt: str | None = None
    author: str | None = None
    published_at: datetime | None = None
    featured_image: str | None = None
    tags: list[str] = PydanticField(default_factory=list)
    categories: list[str] = PydanticField(default_factory=list)
    seo_title: str | None = None
    seo_description: str | None = None
    slug: str | None = None
    updated_at: datetime | None = None
    metadata: dict[str, Any] = PydanticField(default_factory=dict)


class PublishRequest(BaseModel):
    """Caller intent for a single publish or update."""

    post_id: str
    integration_id: str
    site_id: str | None = None
    collection_id: str | None = None
    field_mappings: list[FieldMapping] = PydanticField(default_factory=list)
    publish_immediately: bool = True
    is_draft: bool = False

    @property
    def wants_live(self) -> bool:
        return self.publish_immediately and not self.is_draft


class PublishOptions(BaseModel):
    """Caller-supplied overrides for a publish or update (request body)."""

    site_id: str | None = None
    collection_id: str | None = None
    field_mappings: list[FieldMapping] = PydanticField(default_factory=list)
    publish_immediately: bool = True
    is_draft: bool = False


class PublishResult(BaseModel):
    """Structured outcome of publish/update. Providers never raise past this."""

    success: bool
    published: bool = False
    item_id: str | None = None
    external_url: str | None = None
    published_at: datetime | None = None
    error: str | None = None
    error_code: str | None = None
    state: PublishState = PublishState.START
    metadata: dict[str, Any] = PydanticField(default_factory=dict)


class RemoteItemStatus(BaseModel):
    status: PublishStatus
    external_id: str
    is_draft: bool | None = None
    is_archived: bool | None = None
    last_published: datetime | None = None
    last_updated: datetime | None = None
    error: str | None = None


# ── Drift ───────────────────────────────────────────────────────────────────


class LocalSnapshot(BaseModel):
    title: str
    updated_at: datetime | None = None


class RemoteSnapshot(BaseModel):
    title: str | None = None
    last_updated: datetime | None = None
    is_draft: bool | None = None
    is_archived: bool | None = None
    last_published: datetime | None = None


class SyncStatus(BaseModel):
    in_sync: bool
    local: LocalSnapshot
    remote: RemoteSnapshot | None = None
    differences: list[str] = PydanticField(default_factory=list)


# ── Persistence Reads ───────────────────────────────────────────────────────


class Integration(BaseModel):
    """Tenant-owned integration record. ``config`` is stored encrypted."""

    id: str
    tenant_id: str
    platform: Platform
    name: str
    status: IntegrationStatus = IntegrationStatus.PENDING
    health_status: HealthStatus = HealthStatus.UNKNOWN
    config: dict[str, Any] = PydanticField(default_factory=dict)
    field_mappings: list[FieldMapping] = PydanticField(default_factory=list)
    last_sync: datetime | None = None
    metadata: dict[str, Any] = PydanticField(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PublishLogEntry(BaseModel):
    """One append-only audit row for a publish attempt."""

    id: str
    tenant_id: str
    post_id: str
    integration_id: str
    attempt: int
    status: PublishStatus
    operation: str = "publish"
    external_id: str | None = None
    external_url: str | None = None
    error_message: str | None = None
    error_code: str | None = None
    request_metadata: dict[str, Any] = PydanticField(default_factory=dict)
    response_metadata: dict[str, Any] = PydanticField(default_factory=dict)
    created_at: datetime | None = None
