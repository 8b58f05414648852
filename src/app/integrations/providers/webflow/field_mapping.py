"""Webflow field type table, auto-detect aliases and default mappings.

Defines:
- WEBFLOW_FIELD_TYPES: Webflow native field type -> FieldType
- to_field_type(): native name -> FieldType (unknown names become TEXT)
- WEBFLOW_MAPPING_PROFILE: alias rules in priority order plus the
  default mapping table used when nothing else matches
"""

from __future__ import annotations

from src.app.integrations.mapping import AliasRule, MappingProfile
from src.app.integrations.schemas import (
    BlogField,
    FieldMapping,
    FieldTransform,
    FieldType,
    TransformType,
)

# ── Native Field Types ─────────────────────────────────────────────────────

WEBFLOW_FIELD_TYPES: dict[str, FieldType] = {
    "PlainText": FieldType.TEXT,
    "RichText": FieldType.RICH_TEXT,
    "Image": FieldType.IMAGE,
    "MultiImage": FieldType.IMAGE,
    "ImageRef": FieldType.IMAGE,
    "Video": FieldType.LINK,
    "Link": FieldType.LINK,
    "Email": FieldType.TEXT,
    "Phone": FieldType.TEXT,
    "Number": FieldType.NUMBER,
    "DateTime": FieldType.DATE,
    "Date": FieldType.DATE,
    "Switch": FieldType.BOOLEAN,
    "Color": FieldType.TEXT,
    "Option": FieldType.OPTION,
    "File": FieldType.FILE,
    "FileRef": FieldType.FILE,
    "Reference": FieldType.REFERENCE,
    "MultiReference": FieldType.REFERENCE,
}


def to_field_type(native: str | None) -> FieldType:
    return WEBFLOW_FIELD_TYPES.get(native or "", FieldType.TEXT)


# ── Auto-detect and Defaults ───────────────────────────────────────────────

_DATE_FORMAT = FieldTransform(type=TransformType.DATE_FORMAT, options={"format": "ISO8601"})

_TEXTUAL = frozenset({FieldType.TEXT, FieldType.RICH_TEXT})
_ASSET = frozenset({FieldType.IMAGE, FieldType.FILE})
_DATE = frozenset({FieldType.DATE})

WEBFLOW_MAPPING_PROFILE = MappingProfile(
    platform="webflow",
    alias_rules=(
        AliasRule(BlogField.TITLE, ("name", "title", "post-title", "blog-title", "headline")),
        AliasRule(
            BlogField.CONTENT,
            ("post-body", "body", "content", "post-content", "main-content", "rich-text", "description"),
            allowed_types=_TEXTUAL,
        ),
        AliasRule(BlogField.SLUG, ("slug", "url-slug", "post-slug", "url")),
        AliasRule(
            BlogField.EXCERPT,
            ("post-summary", "excerpt", "summary", "description", "short-description", "intro"),
        ),
        AliasRule(
            BlogField.FEATURED_IMAGE,
            (
                "post-image",
                "main-image",
                "featured-image",
                "image",
                "thumbnail",
                "cover-image",
                "hero-image",
                "feature-image",
            ),
            allowed_types=_ASSET,
        ),
        AliasRule(
            BlogField.PUBLISHED_AT,
            ("publish-date", "published-date", "date", "published-at", "post-date", "publish-date-time"),
            allowed_types=_DATE,
            transform=_DATE_FORMAT,
        ),
        AliasRule(BlogField.SEO_TITLE, ("seo-title", "meta-title", "og-title", "seo-meta-title")),
        AliasRule(
            BlogField.SEO_DESCRIPTION,
            ("seo-description", "meta-description", "og-description", "seo-meta-description"),
        ),
        AliasRule(BlogField.AUTHOR, ("author", "post-author"), allowed_types=_TEXTUAL),
        AliasRule(BlogField.TAGS, ("tags", "post-tags"), allowed_types=_TEXTUAL),
        AliasRule(BlogField.CATEGORIES, ("categories", "category"), allowed_types=_TEXTUAL),
    ),
    defaults=(
        FieldMapping(blog_field=BlogField.TITLE, target_field="name"),
        FieldMapping(blog_field=BlogField.CONTENT, target_field="post-body"),
        FieldMapping(blog_field=BlogField.SLUG, target_field="slug"),
        FieldMapping(blog_field=BlogField.EXCERPT, target_field="post-summary"),
        FieldMapping(blog_field=BlogField.FEATURED_IMAGE, target_field="post-image"),
        FieldMapping(blog_field=BlogField.PUBLISHED_AT, target_field="publish-date", transform=_DATE_FORMAT),
        FieldMapping(blog_field=BlogField.SEO_TITLE, target_field="seo-title"),
        FieldMapping(blog_field=BlogField.SEO_DESCRIPTION, target_field="seo-description"),
    ),
)
