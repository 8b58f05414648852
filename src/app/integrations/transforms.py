"""Field transform engine -- pure conversions of blog values to platform values.

Two stages are applied to every mapped value:
1. apply_transform(): the mapping's declared transform (none, date-format,
   html-to-markdown, markdown-to-html, custom)
2. coerce_for_field_type(): shape the value for the target field's type
   (image/file -> {"url": ...}, date -> ISO-8601, others unchanged)

Both are total: unexpected input is logged and returned unchanged, never
raised. The HTML/Markdown conversions are regex based and lossy (nested
markup, lists and tables are not modelled).
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Any

import structlog

from src.app.integrations.schemas import FieldTransform, FieldType, TransformType

logger = structlog.get_logger(__name__)


# ── Dates ───────────────────────────────────────────────────────────────────


def to_iso8601(value: datetime) -> str:
    """Canonical UTC form with millisecond precision: 2026-01-15T08:30:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_datetime(value: Any) -> datetime | None:
    """Best-effort parse of datetime/date/ISO-8601 string. None when unparseable."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def format_date(value: Any) -> Any:
    parsed = parse_datetime(value)
    if parsed is None:
        logger.warning("transform.unparseable_date", value_type=type(value).__name__)
        return value
    try:
        return to_iso8601(parsed)
    except OverflowError:
        # aware datetimes at the edges of the calendar cannot shift to UTC
        logger.warning("transform.date_out_of_range", value=str(parsed))
        return value


# ── HTML / Markdown ─────────────────────────────────────────────────────────


def _heading(match: re.Match[str]) -> str:
    return f"{'#' * int(match.group(1))} {match.group(2).strip()}\n\n"


_HTML_TO_MD_RULES: list[tuple[re.Pattern[str], Any]] = [
    (re.compile(r"<h([1-6])[^>]*>(.*?)</h\1>", re.I | re.S), _heading),
    (re.compile(r"<(strong|b)>(.*?)</\1>", re.I | re.S), r"**\2**"),
    (re.compile(r"<(em|i)>(.*?)</\1>", re.I | re.S), r"*\2*"),
    (re.compile(r"<a\s+[^>]*href=[\"']([^\"']*)[\"'][^>]*>(.*?)</a>", re.I | re.S), r"[\2](\1)"),
    (re.compile(r"<img\s+[^>]*src=[\"']([^\"']*)[\"'][^>]*/?>", re.I), r"![image](\1)"),
    (re.compile(r"<br\s*/?>", re.I), "\n"),
    (re.compile(r"<p[^>]*>(.*?)</p>", re.I | re.S), r"\1\n\n"),
]

_TAG_RE = re.compile(r"<[^>]+>")


def html_to_markdown(html: str) -> str:
    md = html
    for pattern, replacement in _HTML_TO_MD_RULES:
        md = pattern.sub(replacement, md)
    md = _TAG_RE.sub("", md)
    md = re.sub(r"\n{3,}", "\n\n", md)
    return md.strip()


_MD_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*$")
_MD_IMAGE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)\)")
_MD_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_MD_BOLD = re.compile(r"\*\*(.+?)\*\*|__(.+?)__")
_MD_ITALIC = re.compile(r"(?<![*\w])\*(?!\s)(.+?)(?<!\s)\*(?![*\w])|(?<![_\w])_(?!\s)(.+?)(?<!\s)_(?![_\w])")


def _inline_markdown(text: str) -> str:
    text = _MD_IMAGE.sub(r'<img src="\2" alt="\1" />', text)
    text = _MD_LINK.sub(r'<a href="\2">\1</a>', text)
    text = _MD_BOLD.sub(lambda m: f"<strong>{m.group(1) or m.group(2)}</strong>", text)
    text = _MD_ITALIC.sub(lambda m: f"<em>{m.group(1) or m.group(2)}</em>", text)
    return text


def markdown_to_html(markdown: str) -> str:
    blocks = re.split(r"\n\s*\n", markdown.strip())
    html_blocks: list[str] = []
    for block in blocks:
        block = block.strip()
        if not block:
            continue
        heading = _MD_HEADING.match(block)
        if heading and "\n" not in block:
            level = len(heading.group(1))
            html_blocks.append(f"<h{level}>{_inline_markdown(heading.group(2))}</h{level}>")
            continue
        lines = [_inline_markdown(line.strip()) for line in block.splitlines()]
        html_blocks.append(f"<p>{'<br />'.join(lines)}</p>")
    return "".join(html_blocks)


# ── Transform dispatch ──────────────────────────────────────────────────────


def apply_transform(value: Any, transform: FieldTransform | None) -> Any:
    """Apply the declared transform. None values pass through untouched."""
    if value is None or transform is None or transform.type == TransformType.NONE:
        return value

    if transform.type == TransformType.DATE_FORMAT:
        return format_date(value)

    if transform.type in (TransformType.HTML_TO_MARKDOWN, TransformType.MARKDOWN_TO_HTML):
        if not isinstance(value, str):
            logger.warning("transform.non_string_input", transform=transform.type.value)
            return value
        if transform.type == TransformType.HTML_TO_MARKDOWN:
            return html_to_markdown(value)
        return markdown_to_html(value)

    # custom transforms are declared for forward compatibility and are identity today
    logger.info("transform.custom_identity", options=list(transform.options))
    return value


def coerce_for_field_type(value: Any, field_type: FieldType) -> Any:
    """Shape a transformed value for the target field's type."""
    if value is None:
        return None

    if field_type in (FieldType.IMAGE, FieldType.FILE):
        if isinstance(value, str):
            return {"url": value}
        if isinstance(value, dict) and "url" in value:
            return value
        logger.warning("transform.unexpected_asset_value", field_type=field_type.value)
        return value

    if field_type == FieldType.DATE:
        return format_date(value)

    if field_type == FieldType.TEXT and isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)

    return value
