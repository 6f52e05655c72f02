"""
Media resolution: source asset URLs to destination media ids.

For each :class:`~models.content_item.MediaRef` the resolver downloads the
source binary (a 404 means "skip this field"), looks for an asset already
present in the destination library and only uploads when nothing matches.
Every URL is resolved at most once per run thanks to the cache held in
:class:`~cms_sync.context.SyncContext`.

Matching is delegated to matchers tried in order:

* :class:`MappingMediaMatcher` reads a URL -> id map saved by a previous run.
  The map is only a hint: every hit is re-read from the destination and
  dropped if the media no longer exists.
* :class:`SearchMediaMatcher` searches the library by filename stem and takes
  the entry whose ``source_url`` ends with the same filename, else the first
  result.  The first-result fallback can pick an unrelated file that happens
  to share a word with the stem.

In dry-run mode nothing is uploaded; :data:`DRY_RUN_MEDIA_ID` stands in for
the id that would have been created.
"""

from __future__ import annotations

import json
import mimetypes
import os
import posixpath
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union
from urllib.parse import unquote, urlsplit

from models.content_item import MediaRef
from cms_sync.config import RunConfig
from cms_sync.context import SyncContext
from cms_sync.utils.errors import report_error
from cms_sync.utils.logger import log_message
from cms_sync.utils.slugs import strip_duplicate_suffix

DRY_RUN_MEDIA_ID = -1
DEFAULT_FILENAME = "image"

_CONTENT_TYPE_EXTENSIONS = (
    ("jpeg", "jpg"),
    ("jpg", "jpg"),
    ("png", "png"),
    ("webp", "webp"),
    ("gif", "gif"),
    ("avif", "avif"),
    ("svg", "svg"),
)
_EXTENSION_RE = re.compile(r"\.[a-z0-9]{2,5}$", re.IGNORECASE)


@dataclass(frozen=True)
class ResolvedMedia:
    id: int
    source_url: str
    filename: str
    reused: bool = False

    @property
    def is_placeholder(self) -> bool:
        return self.id == DRY_RUN_MEDIA_ID


def extension_for_content_type(content_type: str) -> str:
    lowered = (content_type or "").lower()
    for marker, extension in _CONTENT_TYPE_EXTENSIONS:
        if marker in lowered:
            return extension
    return "bin"


def pick_filename(url: str, content_type: str = "") -> str:
    """
    Filename to upload ``url`` under.

    The last path segment is used (query and fragment removed).  When it has
    no extension one is derived from ``content_type``.
    """
    path = urlsplit(url or "").path
    segment = posixpath.basename(path.rstrip("/")) or DEFAULT_FILENAME
    if _EXTENSION_RE.search(segment):
        return unquote(segment)
    return f"{unquote(segment)}.{extension_for_content_type(content_type)}"


def filename_stem(filename: str) -> str:
    return _EXTENSION_RE.sub("", filename or "")


def guess_mime_type(filename: str, fallback: str = "application/octet-stream") -> str:
    return mimetypes.guess_type(filename)[0] or fallback


###############################################################################
# Matchers
###############################################################################

class SearchMediaMatcher:
    """Look the filename up in the destination media library."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def match(self, url: str, filename: str) -> Optional[Dict[str, Any]]:
        stem = filename_stem(filename)
        if not stem:
            return None
        results = self.client.search_media(stem)
        if not results:
            return None
        suffix = "/" + filename.lower()
        for media in results:
            if str(media.get("source_url") or "").lower().endswith(suffix):
                return media
        return results[0]


class MappingMediaMatcher:
    """URL -> id table from an earlier run, verified against the destination."""

    def __init__(self, mapping: Dict[str, int], client: Any) -> None:
        self.mapping = {str(k): int(v) for k, v in mapping.items() if str(v).lstrip("-").isdigit() and int(v) > 0}
        self.client = client

    @classmethod
    def from_file(cls, path: str, client: Any) -> "MappingMediaMatcher":
        mapping: Dict[str, int] = {}
        if path and os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    mapping = json.load(f)
            except json.JSONDecodeError:
                log_message(f"Could not decode {path}. Starting with an empty media map.", level="WARNING")
                mapping = {}
        return cls(mapping, client)

    def match(self, url: str, filename: str) -> Optional[Dict[str, Any]]:
        media_id = self.mapping.get(url)
        if media_id is None:
            return None
        media = self.client.get_media(media_id)
        if not media:
            log_message(f"Stale media map entry {url} -> {media_id}; ignoring it", level="WARNING")
            self.mapping.pop(url, None)
            return None
        return media


###############################################################################
# Resolver
###############################################################################

class MediaResolver:
    """Turns :class:`MediaRef`s (or plain URLs) into destination media ids."""

    def __init__(
        self,
        client: Any,
        context: SyncContext,
        run: RunConfig,
        *,
        matchers: Optional[Sequence[Any]] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.context = context
        self.run = run
        self.matchers = list(matchers) if matchers is not None else [SearchMediaMatcher(client)]
        self.sleep_fn = sleep_fn

    def resolve_record(self, ref: Union[MediaRef, str, None]) -> Optional[ResolvedMedia]:
        """
        Resolve one asset.

        :return: The destination media (possibly the dry-run placeholder),
            or ``None`` when the source asset does not exist.
        """
        if ref is None:
            return None
        if isinstance(ref, MediaRef):
            url = ref.source_url
            if ref.destination_id:
                return ResolvedMedia(ref.destination_id, url, ref.filename, reused=True)
        else:
            url = str(ref).strip()
        if not url:
            return None

        if url in self.context.media_by_url:
            resolved = self.context.media_by_url[url]
        else:
            resolved = self._resolve_url(url)
            self.context.media_by_url[url] = resolved

        if isinstance(ref, MediaRef) and resolved is not None and not resolved.is_placeholder:
            ref.destination_id = resolved.id
        return resolved

    def resolve(self, ref: Union[MediaRef, str, None]) -> Optional[int]:
        resolved = self.resolve_record(ref)
        return resolved.id if resolved is not None else None

    def resolve_many(self, refs: Iterable[Union[MediaRef, str]]) -> List[int]:
        ids: List[int] = []
        for ref in refs:
            media_id = self.resolve(ref)
            if media_id is not None:
                ids.append(media_id)
        return ids

    def _resolve_url(self, url: str) -> Optional[ResolvedMedia]:
        download = self.client.download_remote_file(url)
        if download is None:
            log_message(f"Source media not found (404), skipping: {url}", level="WARNING")
            report_error("MEDIA_DOWNLOAD", {"slug": url})
            return None
        filename = pick_filename(url, download.content_type)

        for matcher in self.matchers:
            hit = matcher.match(url, filename)
            if hit and hit.get("id"):
                log_message(f"Reusing media {hit['id']} for {filename}")
                return ResolvedMedia(int(hit["id"]), str(hit.get("source_url") or ""), filename, reused=True)

        if self.run.dry_run:
            log_message(f"Dry-run: would upload {filename}")
            return ResolvedMedia(DRY_RUN_MEDIA_ID, url, filename)

        content_type = download.content_type or guess_mime_type(filename)
        media = self.client.upload_media(download.content, filename, content_type)
        log_message(f"Uploaded {filename} as media {media['id']}")
        self.sleep_fn(self.run.write_delay)
        return ResolvedMedia(int(media["id"]), str(media.get("source_url") or ""), filename)

    def url_map(self) -> Dict[str, int]:
        """Resolved, real destination ids keyed by source URL."""
        return {
            url: resolved.id
            for url, resolved in self.context.media_by_url.items()
            if resolved is not None and not resolved.is_placeholder
        }

    def save_map(self, path: str) -> str:
        """Merge this run's resolutions into the JSON map at ``path``."""
        existing: Dict[str, int] = {}
        if os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    existing = json.load(f)
            except json.JSONDecodeError:
                existing = {}
        existing.update(self.url_map())
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(existing, f, indent=2, sort_keys=True)
        return path


###############################################################################
# Client logo guessing
###############################################################################

# "logo" in the filename plus at least one matching token
LOGO_MIN_SCORE = 13


def tokenize(value: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", (value or "").lower()) if len(t) >= 3]


def score_logo_candidate(filename: str, tokens: Iterable[str]) -> int:
    name = (filename or "").lower()
    score = 10 if "logo" in name else 0
    for token in tokens:
        if token in name:
            score += 3
    return score


def guess_client_logo(client_name: str, slug: str, candidates: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pick the media entry that most likely is the client's logo.

    :param client_name: The work's client.
    :param slug: The work's slug (a duplicate suffix is ignored).
    :param candidates: Media entries with ``source_url``, usually the result
        of searching the library for "logo".
    :return: The best entry when its score reaches :data:`LOGO_MIN_SCORE`.
    """
    tokens = list(dict.fromkeys(tokenize(client_name) + tokenize(strip_duplicate_suffix(slug))))
    best: Optional[Dict[str, Any]] = None
    best_score = 0
    for media in candidates:
        filename = posixpath.basename(urlsplit(str(media.get("source_url") or "")).path)
        score = score_logo_candidate(filename, tokens)
        if score > best_score:
            best, best_score = media, score
    return best if best_score >= LOGO_MIN_SCORE else None
