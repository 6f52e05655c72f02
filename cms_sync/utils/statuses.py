from __future__ import annotations

from html import unescape
import re
import unicodedata
from typing import Dict, Optional, Tuple


# Canonical work statuses stored in the destination ACF field
_STATUS_TO_LABEL: Dict[str, str] = {
    "completed": "Completed",
    "proposal": "Proposal",
    "concept": "Concept",
    "in_progress": "In progress",
    "backlog": "Backlog",
}

DEFAULT_STATUS = "completed"

# Keywords and emoji markers found in the CSV export's "Project status" column
_MARKERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("in_progress", ("in progress", "in_progress", "in-progress", "progress", "⌚")),
    ("completed", ("completed", "complete", "✅")),
    ("proposal", ("proposal", "\U0001f4c3")),
    ("concept", ("concept", "\U0001f4ad")),
    ("backlog", ("backlog",)),
)


def _strip_accents(text: str) -> str:
    return "".join(
        c for c in unicodedata.normalize("NFD", text) if unicodedata.category(c) != "Mn"
    )


def _canonical_key(text: str) -> str:
    t = unescape(text or "").strip()
    t = re.sub(r"\s+", " ", t)
    t = t.lower()
    return _strip_accents(t)


def canonical_status(value: object) -> Optional[str]:
    """
    Map a raw status value (label, key or emoji-decorated export value) to
    the canonical key.  Returns ``None`` when the value is not recognized.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    key = _canonical_key(value)
    if key in _STATUS_TO_LABEL:
        return key
    for status, markers in _MARKERS:
        if any(marker in key for marker in markers):
            return status
    return None


def parse_status(value: object, default: str = DEFAULT_STATUS) -> str:
    """Like :func:`canonical_status` but falls back to ``default``."""
    return canonical_status(value) or default


def status_label(status: str) -> str:
    """Return the display label for a canonical status key."""
    return _STATUS_TO_LABEL.get(status, status)


def all_statuses() -> Dict[str, str]:
    """Return a copy of the full key->label mapping."""
    return dict(_STATUS_TO_LABEL)
