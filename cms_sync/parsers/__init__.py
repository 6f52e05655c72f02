"""
Parsers and converters used by the sync pipeline.

Currently this subpackage exposes ``normalize_item`` from
:mod:`cms_sync.parsers.normalizer` and ``sanitize_rich_text`` from
:mod:`cms_sync.parsers.rich_text`.
"""

from .normalizer import normalize_item
from .rich_text import sanitize_rich_text

__all__ = ["normalize_item", "sanitize_rich_text"]
