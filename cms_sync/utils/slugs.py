"""
Slug reconciliation between the source CMS and the destination.

WordPress answers a repeated slug by appending ``-2``, ``-3`` and so on.
After a few partial runs the destination may hold ``project-x``,
``project-x-2`` and ``project-x-3`` for what is one logical item.  The helpers
below strip that suffix, pick a single survivor per base slug and build the
lookup index the sync driver uses to decide between create, update and skip.

Records may be raw WordPress dicts (``slug``, ``date``/``date_gmt``, ``id``)
or :class:`~models.content_item.ContentItem` instances (``slug``,
``publish_date``, ``source_id``).
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

_DUPLICATE_SUFFIX_RE = re.compile(r"^(.*)-(\d{1,2})$")
MIN_DUPLICATE_SUFFIX = 2
MAX_DUPLICATE_SUFFIX = 99


def strip_duplicate_suffix(slug: str) -> str:
    """Remove a trailing ``-N`` (2 <= N <= 99) left by WordPress on slug clashes.

    ``"project-x-2"`` becomes ``"project-x"``; ``"section-1"``,
    ``"page-100"`` and ``"-5"`` are returned unchanged.
    """
    value = (slug or "").strip()
    match = _DUPLICATE_SUFFIX_RE.match(value)
    if not match:
        return value
    base, number = match.group(1), int(match.group(2))
    if not base or not (MIN_DUPLICATE_SUFFIX <= number <= MAX_DUPLICATE_SUFFIX):
        return value
    return base


def is_duplicate_slug(slug: str) -> bool:
    return strip_duplicate_suffix(slug) != (slug or "").strip()


def _parse_timestamp(value: Any) -> Optional[float]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _parse_numeric_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _record_values(record: Any) -> Tuple[str, Optional[float], Optional[int]]:
    if isinstance(record, dict):
        date = record.get("date_gmt") or record.get("date") or record.get("publishDate")
        return str(record.get("slug") or ""), _parse_timestamp(date), _parse_numeric_id(record.get("id"))
    return (
        str(getattr(record, "slug", "") or ""),
        _parse_timestamp(getattr(record, "publish_date", None)),
        _parse_numeric_id(getattr(record, "source_id", None)),
    )


def pick_preferred(a: Any, b: Any) -> Any:
    """Choose which of two records sharing a base slug survives.

    Tie-breaks, in order: a non-suffixed slug beats a suffixed one; the later
    date wins when both dates parse and differ; the higher numeric id wins;
    otherwise ``a`` is kept.
    """
    slug_a, date_a, id_a = _record_values(a)
    slug_b, date_b, id_b = _record_values(b)

    dup_a = is_duplicate_slug(slug_a)
    dup_b = is_duplicate_slug(slug_b)
    if dup_a != dup_b:
        return b if dup_a else a

    if date_a is not None and date_b is not None and date_a != date_b:
        return a if date_a > date_b else b

    if id_a is not None and id_b is not None and id_a != id_b:
        return a if id_a > id_b else b

    return a


def group_by_base_slug(records: Iterable[Any]) -> Dict[str, List[Any]]:
    """Group records by their de-suffixed slug, keeping input order."""
    groups: Dict[str, List[Any]] = {}
    for record in records:
        slug, _, _ = _record_values(record)
        if not slug:
            continue
        groups.setdefault(strip_duplicate_suffix(slug), []).append(record)
    return groups


def build_slug_index(records: Iterable[Any]) -> Dict[str, Any]:
    """Map every base slug to its surviving record."""
    index: Dict[str, Any] = {}
    for base, group in group_by_base_slug(records).items():
        survivor = group[0]
        for candidate in group[1:]:
            survivor = pick_preferred(survivor, candidate)
        index[base] = survivor
    return index


def dedupe_by_slug(records: Iterable[Any]) -> List[Any]:
    """Collapse records sharing a base slug to one survivor each.

    The output keeps the order in which each base slug first appeared.
    Records without a slug are dropped.
    """
    return list(build_slug_index(records).values())
