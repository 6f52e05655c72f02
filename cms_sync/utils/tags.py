from __future__ import annotations

from html import unescape
import re
from typing import Any, Dict, List


def _normalize_label(value: str) -> str:
    """Unescape HTML entities and collapse inner whitespace.

    Preserves original casing but trims leading/trailing spaces
    and converts sequences of whitespace to a single space.
    """
    if not value:
        return ""
    text = unescape(value).strip()
    # Collapse multiple whitespace to single space
    text = re.sub(r"\s+", " ", text)
    return text


def _dedupe_labels(labels: List[str]) -> List[str]:
    seen_lower = set()
    result: List[str] = []
    for raw in labels:
        label = _normalize_label(raw)
        key = label.lower()
        if label and key not in seen_lower:
            seen_lower.add(key)
            result.append(label)
    return result


def parse_tags_field(field: str) -> List[str]:
    """
    Parse and normalize a tags field from a CSV export.

    - Splits primarily on '|', with ',' as a fallback
    - Unescapes HTML entities (e.g., '&amp;' -> '&')
    - Trims spaces, collapses inner whitespace
    - Deduplicates case-insensitively while preserving first-seen casing
    """
    if not field:
        return []

    text = field.strip()
    parts = [p.strip() for p in (text.split("|") if "|" in text else text.split(","))]
    return _dedupe_labels([p for p in parts if p])


def tag_names_from_value(value: Any) -> List[str]:
    """
    Read tag labels out of whatever shape a CMS hands back.

    Accepts a delimited string, a list of strings, a list of term objects
    (``{"name": ...}``), Strapi relation wrappers (``{"data": [...]}``) and
    nested ``attributes``.  Numeric term ids are ignored because they carry
    no label.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return parse_tags_field(value)
    if isinstance(value, dict):
        if "data" in value:
            return tag_names_from_value(value.get("data"))
        attrs = value.get("attributes") if isinstance(value.get("attributes"), dict) else value
        name = attrs.get("name") or attrs.get("label") or attrs.get("title")
        return _dedupe_labels([name]) if isinstance(name, str) else []
    if isinstance(value, (list, tuple)):
        labels: List[str] = []
        for entry in value:
            labels.extend(tag_names_from_value(entry))
        return _dedupe_labels(labels)
    return []


def slugify_tag(name: str) -> str:
    """Lowercase, drop apostrophes, collapse everything else to single dashes."""
    text = _normalize_label(name).lower()
    text = re.sub(r"['’]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")


def to_wordpress_terms_payload(tags: List[str]) -> List[Dict[str, str]]:
    """
    Build the ``{"name", "slug"}`` bodies used to create WordPress tags,
    one per distinct slug, in first-seen order.
    """
    payload: List[Dict[str, str]] = []
    seen = set()
    for tag in tags:
        name = _normalize_label(tag)
        slug = slugify_tag(name)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        payload.append({"name": name, "slug": slug})
    return payload
