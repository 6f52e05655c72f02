"""
High-level orchestration of the Strapi → WordPress content sync.

This module defines a :class:`ContentSyncTool` class that ties together the
extractors, the normalizer, the rich-text sanitizer, the media resolver and
the WordPress client into a complete pipeline.  For each content kind it:

1. fetches the source records and normalizes them, dropping unusable ones;
2. collapses source duplicates by slug;
3. reads the destination once and builds a base-slug index of survivors;
4. for every item, skips it (or updates it with ``update_existing``) when a
   survivor exists, otherwise resolves media, ensures tags, sanitizes rich
   text and creates the post, then writes its ACF fields.

One failing item is logged, reported and counted; it never stops the run.
Rejected credentials do stop it.  In dry-run mode every destination read
still happens but nothing is written, and the counters are flagged as
simulated.

Configuration is the dictionary returned by
:func:`cms_sync.config.load_config`; the per-run switches live in a
:class:`~cms_sync.config.RunConfig`.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

from models.content_item import INSIGHT, WORK, ContentItem
from cms_sync.config import RunConfig
from cms_sync.context import SyncContext, SyncResult
from cms_sync.migrators.media_resolver import MediaResolver, MappingMediaMatcher, SearchMediaMatcher
from cms_sync.migrators.wordpress_migrator import get_or_create_tags
from cms_sync.parsers.normalizer import normalize_item
from cms_sync.parsers.rich_text import (
    UrlPolicy,
    contains_markup,
    extract_image_urls,
    html_to_markdown,
    replace_urls,
    sanitize_rich_text,
)
from cms_sync.utils.errors import AuthenticationError, report_error, report_ok
from cms_sync.utils.logger import log_message, log_section
from cms_sync.utils.reports import write_sync_report_csv
from cms_sync.utils.slugs import build_slug_index, dedupe_by_slug, strip_duplicate_suffix
from cms_sync.utils.tags import to_wordpress_terms_payload

RICH_TEXT_FIELDS = {WORK: ("brief", "scope", "details"), INSIGHT: ("body",)}
DESTINATION_FIELDS = "id,slug,date,date_gmt,featured_media,tags,acf,link"


class ContentSyncTool:
    """
    Encapsulates the state and behavior of one sync run.  Detailed success
    and failure information is recorded using :mod:`cms_sync.utils.errors`.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        run: RunConfig,
        *,
        client: Any,
        fetch_items: Callable[[str], List[Dict[str, Any]]],
        context: Optional[SyncContext] = None,
        resolver: Optional[MediaResolver] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.run = run
        self.client = client
        self.fetch_items = fetch_items
        self.context = context or SyncContext()
        self.sleep_fn = sleep_fn

        wp = config.get("wordpress", {})
        self.post_types: Dict[str, str] = wp.get("post_types") or {WORK: "work", INSIGHT: "insight"}
        self.policy = UrlPolicy(
            asset_base_url=wp.get("base_url", ""),
            site_url=wp.get("site_url", ""),
            allowed_hosts=tuple(wp.get("allowed_hosts") or ()),
        )
        self.source_base_url = config.get("strapi", {}).get("base_url") or None
        self.media_map_file = config.get("sync", {}).get("media_map_file")

        if resolver is None:
            matchers = [SearchMediaMatcher(client)]
            if self.media_map_file:
                matchers.insert(0, MappingMediaMatcher.from_file(self.media_map_file, client))
            resolver = MediaResolver(client, self.context, run, matchers=matchers, sleep_fn=sleep_fn)
        self.resolver = resolver

    def log_message(self, message: str, level: str = "INFO") -> None:
        log_message(message, level)

    ###########################################################################
    # Run
    ###########################################################################

    def sync_all(self) -> Dict[str, SyncResult]:
        """Sync every selected kind and return the per-kind results."""
        mode = "DRY RUN" if self.run.dry_run else "LIVE"
        self.log_message(f"Starting content sync ({mode}) for {', '.join(self.run.kinds)}")
        for kind in self.run.kinds:
            self.sync_kind(kind)

        try:
            path = write_sync_report_csv(self.context.report_rows)
            self.log_message(f"Sync report written to {path} ({len(self.context.report_rows)} rows)")
        except OSError as e:
            self.log_message(f"Failed to write sync report: {e}", "ERROR")
        if not self.run.dry_run and self.media_map_file:
            self.resolver.save_map(self.media_map_file)
        return self.context.results

    def load_source_items(self, kind: str) -> List[ContentItem]:
        raw_records = self.fetch_items(kind)
        items: List[ContentItem] = []
        for raw in raw_records:
            item = normalize_item(raw, kind, media_base_url=self.source_base_url)
            if item is None:
                report_error("NORMALIZE", raw if isinstance(raw, dict) else {"slug": None})
                continue
            items.append(item)
        unique = dedupe_by_slug(items)
        if len(unique) != len(items):
            self.log_message(f"Collapsed {len(items) - len(unique)} duplicate {kind} source records")
        if self.run.limit is not None:
            unique = unique[: int(self.run.limit)]
        self.log_message(f"Loaded {len(unique)} {kind} items from source")
        return unique

    def build_destination_index(self, kind: str) -> Dict[str, Dict[str, Any]]:
        posts = self.client.list_posts(
            self.post_types[kind], params={"status": "any", "context": "edit", "_fields": DESTINATION_FIELDS}
        )
        index = build_slug_index(posts)
        self.log_message(f"Destination has {len(posts)} {kind} posts ({len(index)} distinct slugs)")
        return index

    def sync_kind(self, kind: str) -> SyncResult:
        log_section(f"Syncing {kind}s")
        result = self.context.result_for(kind, simulated=self.run.dry_run)
        items = self.load_source_items(kind)
        index = self.build_destination_index(kind)

        for item in items:
            try:
                self.sync_item(item, index, result)
            except AuthenticationError:
                raise
            except Exception as e:
                error_details = e.response.text if getattr(e, "response", None) is not None else str(e)
                result.failed += 1
                report_error("WP_NETWORK", item, e)
                self.log_message(f"Failed to sync {kind} '{item.slug}': {error_details}", "ERROR")
                self._record(item, "failed")

        self.log_message(f"{kind}: {result}")
        return result

    ###########################################################################
    # Items
    ###########################################################################

    def sync_item(self, item: ContentItem, index: Dict[str, Dict[str, Any]], result: SyncResult) -> None:
        base = strip_duplicate_suffix(item.slug)
        existing = index.get(base)
        if existing is not None:
            if self.run.update_existing:
                self._update(item, existing, result)
            else:
                result.skipped += 1
                self.log_message(f"Skipping existing {item.kind} '{item.slug}' (id {existing.get('id')})")
                self._record(item, "skipped", existing)
            return
        self._create(item, index, result)

    def _create(self, item: ContentItem, index: Dict[str, Dict[str, Any]], result: SyncResult) -> None:
        post_type = self.post_types[item.kind]
        # re-check right before writing in case another run created it meanwhile
        fresh = self.client.find_posts_by_slug(post_type, item.slug)
        if fresh:
            index[strip_duplicate_suffix(item.slug)] = fresh[0]
            result.skipped += 1
            self.log_message(f"Skipping {item.kind} '{item.slug}': created since the index was built")
            self._record(item, "skipped", fresh[0])
            return

        media_ids = self._resolve_media(item)
        tag_ids: List[int] = []
        if item.kind == INSIGHT and item.tags:
            tag_ids = get_or_create_tags(self.client, item.tags, self.context, dry_run=self.run.dry_run)
        rich_text = {attr: self.prepare_rich_text(getattr(item, attr)) for attr in RICH_TEXT_FIELDS[item.kind]}

        content = rich_text.get("body") if item.kind == INSIGHT else (rich_text.get("details") or rich_text.get("brief"))
        payload = item.to_wordpress_payload(
            content=content, featured_media=media_ids.get("mainImage"), tag_ids=tag_ids
        )
        acf = item.to_acf_fields(media_ids, rich_text)

        if self.run.dry_run:
            self.log_message(f"Dry-run: would create {item.kind} '{item.slug}' with {len(acf)} ACF fields")
            result.created += 1
            self._record(item, "created")
            return

        created = self.client.create_post(post_type, payload)
        post_id = int(created["id"])
        self.sleep_fn(self.run.write_delay)
        self.write_acf(post_type, post_id, acf)
        index[strip_duplicate_suffix(item.slug)] = created
        result.created += 1
        report_ok("POST_CREATED", item, {"id": post_id})
        self._record(item, "created", created)

    def _update(self, item: ContentItem, existing: Dict[str, Any], result: SyncResult) -> None:
        post_type = self.post_types[item.kind]
        payload = self.plan_update(item, existing)
        if not payload:
            result.skipped += 1
            self._record(item, "skipped", existing)
            return
        if self.run.dry_run:
            self.log_message(f"Dry-run: would update {item.kind} '{item.slug}': {sorted(payload)}")
            result.updated += 1
            self._record(item, "updated", existing)
            return
        acf = payload.pop("acf", None)
        if payload:
            self.client.update_post(post_type, int(existing["id"]), payload)
            self.sleep_fn(self.run.write_delay)
        if acf:
            self.write_acf(post_type, int(existing["id"]), acf)
        result.updated += 1
        report_ok("POST_UPDATED", item, {"id": existing.get("id")})
        self._record(item, "updated", existing)

    def plan_update(self, item: ContentItem, existing: Dict[str, Any]) -> Dict[str, Any]:
        """Fields of ``existing`` that differ from ``item`` (empty when in sync)."""
        payload: Dict[str, Any] = {}
        acf_now = existing.get("acf") if isinstance(existing.get("acf"), dict) else {}
        acf: Dict[str, Any] = {}

        if bool(acf_now.get("featured")) != item.featured:
            acf["featured"] = item.featured
        if item.kind == INSIGHT and item.description and (acf_now.get("description") or "") != item.description:
            acf["description"] = item.description

        if item.kind == INSIGHT and item.publish_date is not None:
            wanted = item.date_gmt()
            current = str(existing.get("date_gmt") or "")[:19]
            if current != wanted:
                payload["date_gmt"] = wanted

        if item.kind == INSIGHT and item.tags:
            tag_ids = get_or_create_tags(self.client, item.tags, self.context, dry_run=self.run.dry_run)
            complete = len(tag_ids) == len(to_wordpress_terms_payload(item.tags))
            if not complete or set(tag_ids) != {int(t) for t in existing.get("tags") or []}:
                payload["tags"] = tag_ids

        if item.kind == WORK and item.gallery and not acf_now.get("gallery"):
            gallery = self.resolver.resolve_many(item.gallery)
            if gallery:
                acf["gallery"] = gallery

        if not existing.get("featured_media") and item.main_image is not None:
            media_id = self.resolver.resolve(item.main_image)
            if media_id is not None:
                payload["featured_media"] = media_id
                if media_id > 0 and not acf_now.get("mainImage"):
                    acf["mainImage"] = media_id

        if acf:
            payload["acf"] = acf
        return payload

    def write_acf(self, post_type: str, post_id: int, acf: Dict[str, Any]) -> None:
        """Write ACF through the core route, then through the ACF route while it exists."""
        self.client.update_post(post_type, post_id, {"acf": acf})
        if self.context.acf_endpoint_available:
            if self.client.update_acf(post_type, post_id, acf) is None:
                self.context.acf_endpoint_available = False
                self.log_message("ACF REST route not available (404); using the core route only", "WARNING")
        self.sleep_fn(self.run.write_delay)

    ###########################################################################
    # Media and rich text
    ###########################################################################

    def _resolve_media(self, item: ContentItem) -> Dict[str, Any]:
        media_ids: Dict[str, Any] = {}
        for name, ref in item.media_fields().items():
            media_id = self.resolver.resolve(ref)
            if media_id is not None:
                media_ids[name] = media_id
        if item.kind == WORK and item.gallery:
            media_ids["gallery"] = self.resolver.resolve_many(item.gallery)
        return media_ids

    def prepare_rich_text(self, value: Optional[str]) -> Optional[str]:
        """Convert (optionally), sanitize and re-host the images of one rich field."""
        if not value:
            return None
        if self.run.body_format == "markdown" and contains_markup(value):
            value = html_to_markdown(value)
        text = sanitize_rich_text(value, self.policy)
        if not text:
            return None

        replacements: Dict[str, str] = {}
        for url in extract_image_urls(text):
            if self.policy.is_allowed_url(url):
                continue
            resolved = self.resolver.resolve_record(url)
            if resolved is not None and not resolved.is_placeholder and resolved.source_url:
                replacements[url] = resolved.source_url
        return replace_urls(text, replacements)

    def _record(self, item: ContentItem, action: str, post: Optional[Dict[str, Any]] = None) -> None:
        post = post or {}
        link = post.get("link") or ""
        self.context.report_rows.append({
            "kind": item.kind,
            "slug": item.slug,
            "action": action,
            "destination_id": post.get("id") or "",
            "url": self.policy.link_url(link) if link else "",
        })
