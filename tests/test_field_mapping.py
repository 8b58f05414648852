"""Tests for field mapping resolution and payload building.

Covers the ordered tier pipeline (request -> stored -> auto-detect ->
default), dropping of targets absent from the live schema, the fatal
missing-title check, stored mapping normalization and the Webflow alias
table.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import TENANT_ID, make_post
from src.app.integrations.errors import SchemaMismatchError
from src.app.integrations.mapping import (
    FieldMappingResolver,
    build_payload,
    normalize_stored_mappings,
    require_title,
    slugify,
)
from src.app.integrations.providers.webflow import WEBFLOW_MAPPING_PROFILE
from src.app.integrations.schemas import (
    BlogField,
    Collection,
    Field,
    FieldMapping,
    FieldType,
    MappingTier,
)


def _collection(*fields: tuple[str, FieldType]) -> Collection:
    return Collection(
        id="col-1",
        name="Blog",
        slug="blog",
        fields=[Field(id=slug, name=slug, slug=slug, type=type_) for slug, type_ in fields],
    )


def _targets(mappings: list[FieldMapping]) -> dict[BlogField, str]:
    return {m.blog_field: m.target_field for m in mappings}


# ── Pipeline ─────────────────────────────────────────────────────────────────


class TestResolutionPipeline:
    async def test_request_mappings_win(self):
        collection = _collection(("name", FieldType.TEXT), ("headline", FieldType.TEXT))
        requested = [FieldMapping(blog_field=BlogField.TITLE, target_field="headline")]

        resolution = await FieldMappingResolver().resolve(
            TENANT_ID, WEBFLOW_MAPPING_PROFILE, collection, requested
        )

        assert resolution.tier == MappingTier.REQUEST
        assert _targets(resolution.mappings) == {BlogField.TITLE: "headline"}

    async def test_stored_mapping_used_verbatim(self):
        store = AsyncMock()
        store.get_stored_mapping.return_value = [
            {"blog_field": "title", "target_field": "headline"},
            {"blog_field": "content", "target_field": "body"},
        ]
        collection = _collection(
            ("name", FieldType.TEXT), ("headline", FieldType.TEXT), ("body", FieldType.RICH_TEXT)
        )

        resolution = await FieldMappingResolver(store=store).resolve(
            TENANT_ID, WEBFLOW_MAPPING_PROFILE, collection
        )

        store.get_stored_mapping.assert_awaited_once_with(TENANT_ID, "webflow")
        assert resolution.tier == MappingTier.STORED
        assert _targets(resolution.mappings) == {BlogField.TITLE: "headline", BlogField.CONTENT: "body"}

    async def test_failing_store_falls_through_to_auto_detect(self):
        store = AsyncMock()
        store.get_stored_mapping.side_effect = RuntimeError("db down")
        collection = _collection(("name", FieldType.TEXT))

        resolution = await FieldMappingResolver(store=store).resolve(
            TENANT_ID, WEBFLOW_MAPPING_PROFILE, collection
        )

        assert resolution.tier == MappingTier.AUTO_DETECTED

    async def test_default_table_when_nothing_auto_detects(self):
        # no alias rules, so auto-detect yields nothing and the defaults apply
        profile = WEBFLOW_MAPPING_PROFILE.__class__(
            platform="webflow",
            alias_rules=(),
            defaults=WEBFLOW_MAPPING_PROFILE.defaults,
        )
        collection = _collection(("name", FieldType.TEXT), ("post-body", FieldType.RICH_TEXT))

        resolution = await FieldMappingResolver().resolve(TENANT_ID, profile, collection)

        assert resolution.tier == MappingTier.DEFAULT
        assert _targets(resolution.mappings) == {BlogField.TITLE: "name", BlogField.CONTENT: "post-body"}

    async def test_targets_missing_from_schema_are_dropped(self):
        collection = _collection(("name", FieldType.TEXT))
        requested = [
            FieldMapping(blog_field=BlogField.TITLE, target_field="name"),
            FieldMapping(blog_field=BlogField.EXCERPT, target_field="does-not-exist"),
        ]

        resolution = await FieldMappingResolver().resolve(
            TENANT_ID, WEBFLOW_MAPPING_PROFILE, collection, requested
        )

        assert [m.target_field for m in resolution.mappings] == ["name"]
        assert [m.target_field for m in resolution.dropped] == ["does-not-exist"]

    async def test_tier_with_no_valid_targets_falls_through(self):
        collection = _collection(("name", FieldType.TEXT), ("slug", FieldType.TEXT))
        requested = [FieldMapping(blog_field=BlogField.TITLE, target_field="missing")]

        resolution = await FieldMappingResolver().resolve(
            TENANT_ID, WEBFLOW_MAPPING_PROFILE, collection, requested
        )

        assert resolution.tier == MappingTier.AUTO_DETECTED
        assert _targets(resolution.mappings) == {BlogField.TITLE: "name", BlogField.SLUG: "slug"}
        assert resolution.dropped[0].target_field == "missing"


# ── Auto-detect ──────────────────────────────────────────────────────────────


class TestAutoDetect:
    def test_alias_priority_first_match_wins(self):
        collection = _collection(
            ("title", FieldType.TEXT),
            ("name", FieldType.TEXT),
            ("body", FieldType.RICH_TEXT),
            ("post-body", FieldType.RICH_TEXT),
        )
        mappings = FieldMappingResolver.auto_detect(WEBFLOW_MAPPING_PROFILE, collection)
        targets = _targets(mappings)
        assert targets[BlogField.TITLE] == "name"
        assert targets[BlogField.CONTENT] == "post-body"

    def test_remote_field_used_once(self):
        # "description" is an alias for both content and excerpt
        collection = _collection(("name", FieldType.TEXT), ("description", FieldType.RICH_TEXT))
        targets = _targets(FieldMappingResolver.auto_detect(WEBFLOW_MAPPING_PROFILE, collection))
        assert targets[BlogField.CONTENT] == "description"
        assert BlogField.EXCERPT not in targets

    def test_type_restriction_skips_incompatible_field(self):
        collection = _collection(("name", FieldType.TEXT), ("image", FieldType.TEXT))
        targets = _targets(FieldMappingResolver.auto_detect(WEBFLOW_MAPPING_PROFILE, collection))
        assert BlogField.FEATURED_IMAGE not in targets

    def test_date_alias_carries_date_transform(self):
        collection = _collection(("name", FieldType.TEXT), ("publish-date", FieldType.DATE))
        mappings = FieldMappingResolver.auto_detect(WEBFLOW_MAPPING_PROFILE, collection)
        date_mapping = next(m for m in mappings if m.blog_field == BlogField.PUBLISHED_AT)
        assert date_mapping.transform is not None
        assert date_mapping.transform.type.value == "date-format"


# ── Title requirement and payload ────────────────────────────────────────────


class TestPayload:
    async def test_name_body_slug_collection_payload(self):
        collection = _collection(
            ("name", FieldType.TEXT), ("post-body", FieldType.RICH_TEXT), ("slug", FieldType.TEXT)
        )
        post = make_post(title="Hi", content="<p>x</p>", slug=None)

        resolution = await FieldMappingResolver().resolve(TENANT_ID, WEBFLOW_MAPPING_PROFILE, collection)
        payload = build_payload(post, resolution.mappings, collection)

        assert payload == {"name": "Hi", "post-body": "<p>x</p>", "slug": "hi"}

    def test_missing_title_raises_schema_mismatch(self):
        collection = _collection(("post-body", FieldType.RICH_TEXT))
        mappings = [FieldMapping(blog_field=BlogField.CONTENT, target_field="post-body")]

        with pytest.raises(SchemaMismatchError) as exc_info:
            require_title(mappings, collection)

        assert "No title field found in collection" in exc_info.value.message
        assert exc_info.value.available_fields == ["post-body"]

    def test_none_values_are_omitted(self):
        collection = _collection(("name", FieldType.TEXT), ("post-summary", FieldType.TEXT))
        post = make_post(excerpt=None)
        mappings = [
            FieldMapping(blog_field=BlogField.TITLE, target_field="name"),
            FieldMapping(blog_field=BlogField.EXCERPT, target_field="post-summary"),
        ]
        assert build_payload(post, mappings, collection) == {"name": "Hello World"}

    def test_seo_fallbacks(self):
        collection = _collection(("seo-title", FieldType.TEXT), ("seo-description", FieldType.TEXT))
        post = make_post(seo_title=None, seo_description=None, excerpt="Summary")
        mappings = [
            FieldMapping(blog_field=BlogField.SEO_TITLE, target_field="seo-title"),
            FieldMapping(blog_field=BlogField.SEO_DESCRIPTION, target_field="seo-description"),
        ]
        assert build_payload(post, mappings, collection) == {
            "seo-title": "Hello World",
            "seo-description": "Summary",
        }

    def test_image_is_wrapped_for_image_field(self):
        collection = _collection(("main-image", FieldType.IMAGE))
        mappings = [FieldMapping(blog_field=BlogField.FEATURED_IMAGE, target_field="main-image")]
        assert build_payload(make_post(), mappings, collection) == {
            "main-image": {"url": "https://cdn.example.com/hello.png"}
        }


# ── Stored mapping normalization ─────────────────────────────────────────────


class TestNormalizeStoredMappings:
    def test_object_form(self):
        mappings = normalize_stored_mappings({"title": "name", "content": "post-body"})
        assert _targets(mappings) == {BlogField.TITLE: "name", BlogField.CONTENT: "post-body"}

    def test_camel_case_list_form(self):
        mappings = normalize_stored_mappings([{"blogField": "title", "webflowField": "name"}])
        assert _targets(mappings) == {BlogField.TITLE: "name"}

    def test_invalid_entries_are_skipped(self):
        mappings = normalize_stored_mappings(
            [{"blog_field": "nonsense", "target_field": "x"}, {"blog_field": "title"}, "junk"]
        )
        assert mappings == []

    def test_empty_input(self):
        assert normalize_stored_mappings(None) == []
        assert normalize_stored_mappings({}) == []


def test_slugify():
    assert slugify("Hello, World! 2026") == "hello-world-2026"
    assert slugify("  --Hi--  ") == "hi"
