"""
Entity normalization: raw CMS records to :class:`~models.content_item.ContentItem`.

Records reach us in two envelopes.  The *nested* one (Strapi v4) wraps the
fields in ``attributes`` next to ``id``/``documentId``; the *flat* one (Strapi
v5, the CSV export, WordPress REST with ACF) carries them at the top level.
The envelope is detected once, by :func:`classify_record`, and everything
downstream works on plain field dicts.

Media fields come in four shapes: a bare media object, ``{"data": object}``,
a list of objects and ``{"data": [objects]}``.  :func:`normalize_media`
collapses all of them; a string is read as a URL.

A record that cannot be identified (no usable slug or name) produces a
warning and ``None`` so the caller skips it instead of failing the run.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Union
from urllib.parse import urljoin

from pydantic import ValidationError

from models.content_item import INSIGHT, WORK, ContentItem, MediaRef
from cms_sync.parsers.rich_text import decode_html_entities, html_to_plain_text
from cms_sync.utils.logger import log_message
from cms_sync.utils.statuses import canonical_status
from cms_sync.utils.tags import tag_names_from_value

NESTED = "nested"
FLAT = "flat"

DESCRIPTION_FALLBACK_LENGTH = 220
_TABLE_MARKER_RE = re.compile(r"<table\b|wp-block-table", re.IGNORECASE)
_WORDPRESS_CORE_KEYS = ("acf", "status", "tags", "title", "content", "excerpt", "_embedded", "_links")

_DATE_FORMATS = (
    "%a %b %d %Y %H:%M:%S GMT%z",
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%B %d, %Y",
    "%d %B %Y",
)


class RawRecord(NamedTuple):
    """A source record tagged with its envelope shape."""

    kind: str
    payload: Dict[str, Any]


###############################################################################
# Scalars
###############################################################################

def parse_boolean(value: Any) -> bool:
    """
    Read a CMS boolean.  ``true``/``yes``/``1`` and their casings are true;
    ``false``/``no``/``0``/empty/``None`` are false; any other non-empty
    value counts as true.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("", "false", "no", "0", "off", "null", "none"):
        return False
    return True


def parse_date(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 and the export formats into a timezone-aware datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = re.sub(r"\s*\([^)]*\)\s*$", "", value.strip())
        dt = None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if dt is None:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_media_id(value: Any) -> Optional[int]:
    """Accept an int, a digit string, or an object with ``ID``/``id``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    if isinstance(value, dict):
        return to_media_id(value.get("ID", value.get("id")))
    return None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("rendered")
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


###############################################################################
# Media
###############################################################################

def _absolute(url: str, base_url: Optional[str]) -> str:
    if base_url and url.startswith("/") and not url.startswith("//"):
        return urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))
    return url


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def normalize_media_node(node: Any, base_url: Optional[str] = None) -> Optional[MediaRef]:
    """One media object (Strapi, WordPress or a URL string) to a :class:`MediaRef`."""
    if isinstance(node, str):
        url = node.strip()
        return MediaRef(source_url=_absolute(url, base_url)) if url else None
    if not isinstance(node, dict):
        return None
    attrs = node.get("attributes") if isinstance(node.get("attributes"), dict) else {}
    fields = {**node, **attrs}
    url = fields.get("url") or fields.get("source_url") or fields.get("src")
    if not isinstance(url, str) or not url.strip():
        return None
    details = fields.get("media_details") if isinstance(fields.get("media_details"), dict) else {}
    alt = fields.get("alternativeText") or fields.get("alt_text") or fields.get("alt")
    filename = fields.get("name") if attrs or "alternativeText" in fields else None
    if filename and "." not in str(filename):
        filename = None
    return MediaRef(
        source_url=_absolute(url.strip(), base_url),
        filename=filename or "",
        mime_type=fields.get("mime") or fields.get("mime_type") or "",
        alt_text=alt or None,
        source_id=fields.get("id", fields.get("ID")),
        width=_int_or_none(fields.get("width", details.get("width"))),
        height=_int_or_none(fields.get("height", details.get("height"))),
    )


def normalize_media(value: Any, base_url: Optional[str] = None) -> Union[None, MediaRef, List[MediaRef]]:
    """Collapse the four media shapes to a single ref or an ordered list."""
    if value is None:
        return None
    if isinstance(value, dict) and "data" in value and "url" not in value:
        return normalize_media(value.get("data"), base_url)
    if isinstance(value, (list, tuple)):
        refs = [normalize_media_node(node, base_url) for node in value]
        return [ref for ref in refs if ref is not None]
    return normalize_media_node(value, base_url)


def _single_media(value: Any, base_url: Optional[str]) -> Optional[MediaRef]:
    media = normalize_media(value, base_url)
    if isinstance(media, list):
        return media[0] if media else None
    return media


def _media_list(value: Any, base_url: Optional[str]) -> List[MediaRef]:
    if isinstance(value, str) and ";" in value:
        value = [part for part in value.split(";") if part.strip()]
    media = normalize_media(value, base_url)
    if media is None:
        return []
    return media if isinstance(media, list) else [media]


###############################################################################
# Envelopes
###############################################################################

def classify_record(raw: Any) -> Optional[RawRecord]:
    if not isinstance(raw, dict):
        return None
    if isinstance(raw.get("attributes"), dict):
        return RawRecord(NESTED, raw)
    return RawRecord(FLAT, raw)


def _is_wordpress_record(payload: Dict[str, Any]) -> bool:
    return isinstance(payload.get("title"), dict) or isinstance(payload.get("acf"), (dict, list))


def _flatten_wordpress(payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = {k: v for k, v in payload.items() if k not in _WORDPRESS_CORE_KEYS}
    fields["name"] = decode_html_entities(_text(payload.get("title")) or "")
    fields["content"] = _text(payload.get("content"))
    fields["excerpt"] = _text(payload.get("excerpt"))
    fields["tags"] = payload.get("tag_names") or []

    embedded = payload.get("_embedded") if isinstance(payload.get("_embedded"), dict) else {}
    featured = payload.get("featured_media_object")
    if featured is None:
        candidates = embedded.get("wp:featuredmedia") or []
        featured = candidates[0] if candidates and isinstance(candidates[0], dict) else None
    fields["featuredMedia"] = featured

    acf = payload.get("acf") if isinstance(payload.get("acf"), dict) else {}
    for key, value in acf.items():
        if value is not None:
            fields[key] = value
    return fields


def unwrap_record(record: RawRecord) -> Dict[str, Any]:
    """Return the record's fields as one flat dict."""
    payload = record.payload
    if record.kind == NESTED:
        return {"id": payload.get("id"), "documentId": payload.get("documentId"), **payload["attributes"]}
    if _is_wordpress_record(payload):
        return _flatten_wordpress(payload)
    return dict(payload)


###############################################################################
# Items
###############################################################################

def _pick_insight_body(fields: Dict[str, Any]) -> Optional[str]:
    body = _text(fields.get("body"))
    content = _text(fields.get("content"))
    if content and _TABLE_MARKER_RE.search(content) and not (body and _TABLE_MARKER_RE.search(body)):
        return content
    return body or content


def _pick_description(fields: Dict[str, Any], body: Optional[str]) -> Optional[str]:
    for candidate in (fields.get("description"), fields.get("excerpt")):
        text = html_to_plain_text(_text(candidate))
        if text:
            return text
    text = html_to_plain_text(body)
    return text[:DESCRIPTION_FALLBACK_LENGTH].strip() or None


def normalize_item(raw: Any, kind: str, media_base_url: Optional[str] = None) -> Optional[ContentItem]:
    """
    Normalize one raw record of ``kind`` (``"work"`` or ``"insight"``).

    :param raw: Record as returned by the source (Strapi, CSV rows, WordPress).
    :param kind: Content kind to build.
    :param media_base_url: Base for relative media URLs (the source CMS origin).
    :return: The canonical item, or ``None`` when the record is unusable.
    """
    record = classify_record(raw)
    if record is None:
        log_message(f"Skipping {kind} record of type {type(raw).__name__}", level="WARNING")
        return None
    fields = unwrap_record(record)

    main_image = _single_media(fields.get("mainImage"), media_base_url)
    if main_image is None:
        main_image = _single_media(fields.get("featuredMedia"), media_base_url)

    data: Dict[str, Any] = {
        "kind": kind,
        "source_id": fields.get("id"),
        "document_id": fields.get("documentId"),
        "name": decode_html_entities(_text(fields.get("name")) or _text(fields.get("title")) or ""),
        "slug": _text(fields.get("slug")) or "",
        "featured": parse_boolean(fields.get("featured")),
        "publish_date": parse_date(
            fields.get("publishDate") or fields.get("publishedAt") or fields.get("date_gmt") or fields.get("date")
        ),
        "main_image": main_image,
    }

    if kind == WORK:
        data.update(
            status=canonical_status(fields.get("status")),
            brief=_text(fields.get("brief")),
            scope=_text(fields.get("scope")),
            details=_text(fields.get("details")) or _text(fields.get("content")),
            client=decode_html_entities(_text(fields.get("client")) or "") or None,
            video_url=_text(fields.get("videoUrl")),
            cover_image=_single_media(fields.get("coverImage"), media_base_url),
            client_logo=_single_media(fields.get("clientLogo"), media_base_url),
            gallery=_media_list(fields.get("gallery"), media_base_url),
        )
    elif kind == INSIGHT:
        body = _pick_insight_body(fields)
        data.update(
            tags=tag_names_from_value(fields.get("tags")),
            body=body,
            description=_pick_description(fields, body),
            thumbnail_image=_single_media(fields.get("thumbnailImage"), media_base_url),
        )

    try:
        return ContentItem(**data)
    except ValidationError as e:
        label = data.get("slug") or data.get("name") or fields.get("id") or "?"
        log_message(f"Skipping {kind} record '{label}': {e.errors()[0].get('msg')}", level="WARNING")
        return None
