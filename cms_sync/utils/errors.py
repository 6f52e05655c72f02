"""
Error taxonomy and structured reporting for content sync runs.

The :mod:`cms_sync.utils.errors` module defines the exceptions the sync
pipeline raises and centralizes the writing of log entries for both failed
and successful operations.  Each entry is appended to a JSON Lines file under
``reports/sync`` so that the information can be reviewed or parsed after a
run.

Two public reporting functions are provided:

``report_error``
    Record an error that occurred for a content item.  An optional exception
    can be supplied and will be serialized to the log.

``report_ok``
    Record a successful step for a content item.  Additional key/value
    information can be attached to the entry via the ``extra`` parameter.

The ``ERRORS`` dictionary maps error or event codes to human readable
messages.  Codes not present in the dictionary fall back to the code itself.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base class for every error raised by the sync pipeline."""


class ConfigurationError(SyncError):
    """Required configuration is missing or invalid.  Raised before any network call."""


class AuthenticationError(SyncError):
    """Credentials were rejected by a CMS.  Fatal for the whole run."""


# Mapping of event codes used throughout the sync to descriptive messages.
# The keys include both error and success codes as the same lookup is used by
# :func:`report_error` and :func:`report_ok`.
ERRORS: Dict[str, str] = {
    "NORMALIZE": "Record could not be normalized",
    "MEDIA_DOWNLOAD": "Source media could not be downloaded",
    "MEDIA_UPLOAD": "Failed to upload media to WordPress",
    "TAGS": "Failed to ensure tags in WordPress",
    "WP_NETWORK": "Network error communicating with WordPress",
    "ACF_UPDATE": "Failed to write ACF fields",
    "POST_CREATED": "Post created successfully",
    "POST_UPDATED": "Post updated successfully",
    "POST_DELETED": "Post deleted",
    "POST_PATCHED": "Post patched by repair script",
}

_REPORT_DIR = os.path.join("reports", "sync")
_ERROR_LOG = os.path.join(_REPORT_DIR, "errors.jsonl")
_OK_LOG = os.path.join(_REPORT_DIR, "success.jsonl")


def _write_jsonl(path: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline to ``path``."""
    os.makedirs(_REPORT_DIR, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, default=str)
        f.write("\n")


def _describe(item: Any) -> Dict[str, Any]:
    # ContentItem models and raw WordPress dicts are both reported
    if isinstance(item, dict):
        title = item.get("title")
        if isinstance(title, dict):
            title = title.get("rendered")
        return {
            "kind": item.get("kind") or item.get("type"),
            "slug": item.get("slug"),
            "name": item.get("name") or title,
        }
    return {
        "kind": getattr(item, "kind", None),
        "slug": getattr(item, "slug", None),
        "name": getattr(item, "name", None),
    }


def report_error(code: str, item: Any, exc: Optional[BaseException] = None) -> None:
    """Log an error event for ``item``.

    Parameters
    ----------
    code:
        A key identifying the type of error.  If ``code`` is present in
        :data:`ERRORS` its value will be used as the message.
    item:
        The :class:`~models.content_item.ContentItem` or raw destination
        record associated with the error.  Only the kind, slug and name are
        referenced.
    exc:
        Optional exception instance that triggered the error.  The string
        representation of the exception will be included in the log entry.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {"code": code, "message": message, **_describe(item)}
    if exc is not None:
        entry["error"] = str(exc)
    print(f"[ERROR] {message} - {entry.get('slug') or ''}")
    _write_jsonl(_ERROR_LOG, entry)


def report_ok(code: str, item: Any, extra: Optional[Dict[str, Any]] = None) -> None:
    """Log a successful event for ``item``.

    Parameters
    ----------
    code:
        A key identifying the type of event.
    item:
        The content item or destination record associated with the event.
    extra:
        Optional dictionary of additional fields to merge into the log entry.
    """
    message = ERRORS.get(code, code)
    entry: Dict[str, Any] = {"code": code, "message": message, **_describe(item)}
    if extra:
        entry.update(extra)
    print(f"[OK] {message} - {entry.get('slug') or ''}")
    _write_jsonl(_OK_LOG, entry)
