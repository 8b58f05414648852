"""Field mapping resolution -- which blog attribute goes into which remote field.

Resolution is an explicit ordered pipeline; the first tier that yields at
least one mapping valid for the live schema wins:

    request -> stored (tenant custom mapping) -> auto_detected -> default

The winning tier is reported in MappingResolution.tier. Mappings whose
target slug is not in the live schema are dropped (logged, not fatal).
A missing title mapping is the one fatal mismatch and is checked with
require_title() before anything is written remotely.

Platform-specific alias/default tables live with each provider as a
MappingProfile; this module only knows how to apply them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from src.app.integrations.errors import SchemaMismatchError
from src.app.integrations.schemas import (
    BlogField,
    BlogPost,
    Collection,
    FieldMapping,
    FieldTransform,
    FieldType,
    MappingResolution,
    MappingTier,
)
from src.app.integrations.transforms import apply_transform, coerce_for_field_type

logger = structlog.get_logger(__name__)


# ── Profiles ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AliasRule:
    """Auto-detect rule: candidate slugs for one blog field, in priority order.

    ``allowed_types`` restricts which remote field types may match; None
    accepts any type.
    """

    blog_field: BlogField
    aliases: tuple[str, ...]
    allowed_types: frozenset[FieldType] | None = None
    transform: FieldTransform | None = None


@dataclass(frozen=True)
class MappingProfile:
    """A platform's auto-detect aliases and built-in default mappings."""

    platform: str
    alias_rules: tuple[AliasRule, ...] = ()
    defaults: tuple[FieldMapping, ...] = field(default_factory=tuple)


class StoredMappingSource(Protocol):
    async def get_stored_mapping(self, tenant_id: str, platform: str) -> list[FieldMapping] | None:
        ...


# ── Helpers ─────────────────────────────────────────────────────────────────

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase, runs of non-alphanumerics become '-', edge dashes trimmed."""
    return _SLUG_STRIP.sub("-", text.lower()).strip("-")


def normalize_stored_mappings(raw: Any) -> list[FieldMapping]:
    """Accept either the list form or the legacy ``{blog_field: target}`` object.

    Entries that cannot be parsed are skipped with a warning.
    """
    if not raw:
        return []

    entries: list[dict[str, Any]] = []
    if isinstance(raw, dict):
        entries = [{"blog_field": k, "target_field": v} for k, v in raw.items()]
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, FieldMapping):
                entries.append(item.model_dump())
            elif isinstance(item, dict):
                entries.append(
                    {
                        "blog_field": item.get("blog_field") or item.get("blogField"),
                        "target_field": item.get("target_field")
                        or item.get("targetField")
                        or item.get("webflowField"),
                        "transform": item.get("transform"),
                    }
                )

    mappings: list[FieldMapping] = []
    for entry in entries:
        if not entry.get("blog_field") or not entry.get("target_field"):
            logger.warning("mapping.stored_entry_incomplete", entry=entry)
            continue
        try:
            mappings.append(FieldMapping.model_validate(entry))
        except ValueError:
            logger.warning("mapping.stored_entry_invalid", entry=entry)
    return mappings


def blog_value(post: BlogPost, blog_field: BlogField) -> Any:
    """Read a blog attribute, applying the documented fallbacks."""
    if blog_field == BlogField.SLUG:
        return post.slug or slugify(post.title) or post.post_id
    if blog_field == BlogField.SEO_TITLE:
        return post.seo_title or post.title
    if blog_field == BlogField.SEO_DESCRIPTION:
        return post.seo_description or post.excerpt
    if blog_field == BlogField.PUBLISHED_AT:
        return post.published_at or datetime.now(timezone.utc)
    return getattr(post, blog_field.value)


def require_title(mappings: Iterable[FieldMapping], collection: Collection) -> None:
    """Fail fast when no retained mapping targets a title-equivalent field."""
    if any(m.blog_field == BlogField.TITLE for m in mappings):
        return
    available = collection.field_slugs()
    raise SchemaMismatchError(
        "Cannot publish: No title field found in collection. "
        f"Available fields: {', '.join(available) or '(none)'}",
        available_fields=available,
    )


def build_payload(post: BlogPost, mappings: Iterable[FieldMapping], collection: Collection) -> dict[str, Any]:
    """Produce the platform payload: transform then type-coerce each mapped value.

    Targets missing from the schema are skipped; None values are omitted.
    """
    fields_by_slug = {f.slug: f for f in collection.fields}
    payload: dict[str, Any] = {}
    for mapping in mappings:
        target = fields_by_slug.get(mapping.target_field)
        if target is None:
            continue
        value = apply_transform(blog_value(post, mapping.blog_field), mapping.transform)
        value = coerce_for_field_type(value, target.type)
        if value is None:
            continue
        payload[mapping.target_field] = value
    return payload


# ── Resolver ────────────────────────────────────────────────────────────────


class FieldMappingResolver:
    """Resolve the mappings for one publish against the live collection schema.

    Args:
        store: Source of tenant-stored custom mappings. Optional; without it
            the stored tier is always skipped.
    """

    def __init__(self, store: StoredMappingSource | None = None) -> None:
        self._store = store

    async def resolve(
        self,
        tenant_id: str,
        profile: MappingProfile,
        collection: Collection,
        requested: list[FieldMapping] | None = None,
    ) -> MappingResolution:
        available = set(collection.field_slugs())
        dropped: list[FieldMapping] = []

        # MappingTier declaration order is the pipeline order
        for tier in MappingTier:
            candidates = await self._candidates(tier, tenant_id, profile, collection, requested)
            if not candidates:
                continue

            retained = [m for m in candidates if m.target_field in available]
            missing = [m for m in candidates if m.target_field not in available]
            if missing:
                dropped.extend(missing)
                logger.warning(
                    "mapping.targets_not_in_schema",
                    tier=tier.value,
                    collection_id=collection.id,
                    dropped=[m.target_field for m in missing],
                )
            if not retained:
                continue

            logger.info(
                "mapping.resolved",
                tier=tier.value,
                platform=profile.platform,
                collection_id=collection.id,
                mapped=len(retained),
            )
            return MappingResolution(mappings=retained, tier=tier, dropped=dropped)

        logger.warning("mapping.no_usable_mappings", platform=profile.platform, collection_id=collection.id)
        return MappingResolution(mappings=[], tier=MappingTier.DEFAULT, dropped=dropped)

    async def _candidates(
        self,
        tier: MappingTier,
        tenant_id: str,
        profile: MappingProfile,
        collection: Collection,
        requested: list[FieldMapping] | None,
    ) -> list[FieldMapping]:
        if tier == MappingTier.REQUEST:
            return list(requested or [])
        if tier == MappingTier.STORED:
            return await self._stored(tenant_id, profile.platform)
        if tier == MappingTier.AUTO_DETECTED:
            return self.auto_detect(profile, collection)
        return list(profile.defaults)

    async def _stored(self, tenant_id: str, platform: str) -> list[FieldMapping]:
        if self._store is None:
            return []
        try:
            stored = await self._store.get_stored_mapping(tenant_id, platform)
        except Exception:
            logger.warning("mapping.stored_lookup_failed", tenant_id=tenant_id, platform=platform, exc_info=True)
            return []
        return normalize_stored_mappings(stored)

    @staticmethod
    def auto_detect(profile: MappingProfile, collection: Collection) -> list[FieldMapping]:
        """Match alias tables against the schema. Each remote field is used once."""
        fields_by_slug = {f.slug: f for f in collection.fields}
        used: set[str] = set()
        mappings: list[FieldMapping] = []

        for rule in profile.alias_rules:
            for alias in rule.aliases:
                candidate = fields_by_slug.get(alias)
                if candidate is None or alias in used:
                    continue
                if rule.allowed_types is not None and candidate.type not in rule.allowed_types:
                    continue
                mappings.append(
                    FieldMapping(blog_field=rule.blog_field, target_field=alias, transform=rule.transform)
                )
                used.add(alias)
                break

        return mappings
