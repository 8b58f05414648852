"""Tests for the field transform engine.

Covers dates (canonical ISO-8601, idempotence, unparseable input),
HTML <-> Markdown substitution, transform dispatch and the field-type
coercion stage (assets, dates, lists into text).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from src.app.integrations.schemas import FieldTransform, FieldType, TransformType
from src.app.integrations.transforms import (
    apply_transform,
    coerce_for_field_type,
    format_date,
    html_to_markdown,
    markdown_to_html,
    parse_datetime,
    to_iso8601,
)

DATE_FORMAT = FieldTransform(type=TransformType.DATE_FORMAT)


# ── Dates ────────────────────────────────────────────────────────────────────


class TestDates:
    def test_datetime_is_rendered_in_utc_with_milliseconds(self):
        value = datetime(2026, 1, 15, 10, 30, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso8601(value) == "2026-01-15T08:30:00.123Z"

    def test_naive_datetime_is_treated_as_utc(self):
        assert to_iso8601(datetime(2026, 1, 15, 8, 30)) == "2026-01-15T08:30:00.000Z"

    def test_date_becomes_midnight_utc(self):
        assert format_date(date(2026, 3, 1)) == "2026-03-01T00:00:00.000Z"

    def test_iso_string_with_z_suffix_parses(self):
        parsed = parse_datetime("2026-01-15T08:30:00Z")
        assert parsed == datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "value",
        ["2026-01-15T08:30:00.000Z", "2026-01-15T08:30:00+00:00", "2026-01-15T10:30:00+02:00"],
    )
    def test_date_format_is_idempotent(self, value):
        once = apply_transform(value, DATE_FORMAT)
        assert apply_transform(once, DATE_FORMAT) == once
        assert once == "2026-01-15T08:30:00.000Z"

    def test_unparseable_date_is_returned_unchanged(self):
        assert apply_transform("next tuesday", DATE_FORMAT) == "next tuesday"
        assert apply_transform(12345, DATE_FORMAT) == 12345

    def test_date_that_cannot_shift_to_utc_is_returned_unchanged(self):
        value = datetime(1, 1, 1, tzinfo=timezone(timedelta(hours=5)))
        assert apply_transform(value, DATE_FORMAT) is value
        assert apply_transform("0001-01-01T00:00:00+05:00", DATE_FORMAT) == "0001-01-01T00:00:00+05:00"
        assert coerce_for_field_type(value, FieldType.DATE) is value


# ── HTML / Markdown ──────────────────────────────────────────────────────────


class TestHtmlMarkdown:
    def test_html_to_markdown_maps_common_tags(self):
        html = (
            "<h2>Intro</h2><p>Some <strong>bold</strong> and <em>italic</em> "
            '<a href="https://example.com">link</a></p><img src="https://cdn/x.png" />'
        )
        md = html_to_markdown(html)
        assert md.startswith("## Intro")
        assert "**bold**" in md
        assert "*italic*" in md
        assert "[link](https://example.com)" in md
        assert "![image](https://cdn/x.png)" in md
        assert "<" not in md

    def test_markdown_to_html_maps_common_syntax(self):
        md = "# Title\n\nSome **bold** and *italic* with [a link](https://example.com).\n\n![alt](https://cdn/x.png)"
        html = markdown_to_html(md)
        assert html.startswith("<h1>Title</h1>")
        assert "<strong>bold</strong>" in html
        assert "<em>italic</em>" in html
        assert '<a href="https://example.com">a link</a>' in html
        assert '<img src="https://cdn/x.png" alt="alt" />' in html

    def test_markdown_line_breaks_inside_paragraph(self):
        assert markdown_to_html("one\ntwo") == "<p>one<br />two</p>"

    def test_non_string_input_is_returned_unchanged(self):
        transform = FieldTransform(type=TransformType.HTML_TO_MARKDOWN)
        assert apply_transform(["<p>x</p>"], transform) == ["<p>x</p>"]


# ── Dispatch ─────────────────────────────────────────────────────────────────


class TestApplyTransform:
    def test_none_transform_is_identity(self):
        assert apply_transform("<p>x</p>", None) == "<p>x</p>"
        assert apply_transform("<p>x</p>", FieldTransform()) == "<p>x</p>"

    def test_none_value_passes_through(self):
        assert apply_transform(None, DATE_FORMAT) is None

    def test_custom_transform_is_identity(self):
        transform = FieldTransform(type=TransformType.CUSTOM, options={"fn": "upper"})
        assert apply_transform("value", transform) == "value"


# ── Field type coercion ──────────────────────────────────────────────────────


class TestCoercion:
    def test_image_url_is_wrapped(self):
        assert coerce_for_field_type("https://cdn/x.png", FieldType.IMAGE) == {"url": "https://cdn/x.png"}

    def test_file_dict_with_url_passes_through(self):
        value = {"url": "https://cdn/doc.pdf", "alt": "doc"}
        assert coerce_for_field_type(value, FieldType.FILE) == value

    def test_unexpected_asset_value_is_returned_unchanged(self):
        assert coerce_for_field_type(42, FieldType.IMAGE) == 42

    def test_rich_text_passes_html_through(self):
        assert coerce_for_field_type("<p>x</p>", FieldType.RICH_TEXT) == "<p>x</p>"

    def test_date_field_forces_iso(self):
        value = datetime(2026, 1, 15, 8, 30, tzinfo=timezone.utc)
        assert coerce_for_field_type(value, FieldType.DATE) == "2026-01-15T08:30:00.000Z"

    def test_list_into_text_field_is_joined(self):
        assert coerce_for_field_type(["news", "launch"], FieldType.TEXT) == "news, launch"

    def test_other_types_pass_through(self):
        assert coerce_for_field_type(3, FieldType.NUMBER) == 3
        assert coerce_for_field_type(True, FieldType.BOOLEAN) is True
