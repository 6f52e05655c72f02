"""
One-off repair passes over content already in WordPress.

Each pass reads the posts of one post type, decides what to change and
either performs the change or, in dry-run mode, logs what it would do.
Every pass returns a :class:`~cms_sync.context.SyncResult`: patched posts
count as ``updated``, removed posts as ``deleted`` and untouched posts as
``skipped``.  One failing post is reported and counted; it does not stop the
pass.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.content_item import INSIGHT, WORK, ContentItem
from cms_sync.config import RunConfig
from cms_sync.context import SyncContext, SyncResult
from cms_sync.migrators.media_resolver import MediaResolver, guess_client_logo
from cms_sync.migrators.wordpress_migrator import get_or_create_tags
from cms_sync.parsers.normalizer import to_media_id
from cms_sync.parsers.rich_text import (
    UrlPolicy,
    extract_image_urls,
    patch_strings,
    replace_urls,
    strip_css_leaks,
)
from cms_sync.utils.errors import AuthenticationError, report_error, report_ok
from cms_sync.utils.logger import log_message, log_section
from cms_sync.utils.slugs import group_by_base_slug, pick_preferred, strip_duplicate_suffix
from cms_sync.utils.tags import to_wordpress_terms_payload

ACF_MEDIA_FIELDS = ("mainImage", "coverImage", "clientLogo", "thumbnailImage")
ACF_RICH_FIELDS = ("brief", "scope", "details", "body", "description")
EDIT_PARAMS = {"status": "any", "context": "edit"}


def _title(post: Dict[str, Any]) -> str:
    title = post.get("title")
    if isinstance(title, dict):
        title = title.get("raw") or title.get("rendered")
    return str(title or "")


def _content(post: Dict[str, Any]) -> str:
    content = post.get("content")
    if isinstance(content, dict):
        content = content.get("raw") if content.get("raw") is not None else content.get("rendered")
    return str(content or "")


def _label(post: Dict[str, Any]) -> str:
    return f"{post.get('slug') or '?'} (id {post.get('id')})"


def _patch(client: Any, post_type: str, post: Dict[str, Any], payload: Dict[str, Any], run: RunConfig,
           result: SyncResult) -> None:
    if run.dry_run:
        log_message(f"Dry-run: would patch {_label(post)}: {sorted(payload)}")
    else:
        client.update_post(post_type, int(post["id"]), payload)
        report_ok("POST_PATCHED", post, {"fields": sorted(payload)})
    result.updated += 1


def _delete(client: Any, post_type: str, post: Dict[str, Any], run: RunConfig, result: SyncResult) -> None:
    if run.dry_run:
        log_message(f"Dry-run: would delete {_label(post)}")
    else:
        client.delete_post(post_type, int(post["id"]))
        report_ok("POST_DELETED", post)
    result.deleted += 1


def _guarded(post: Dict[str, Any], result: SyncResult, action) -> None:
    try:
        action()
    except AuthenticationError:
        raise
    except Exception as e:
        result.failed += 1
        report_error("WP_NETWORK", post, e)
        log_message(f"Failed to repair {_label(post)}: {e}", "ERROR")


###############################################################################
# CSS leaks
###############################################################################

def clean_css_leaks(
    client: Any,
    post_type: str,
    run: RunConfig,
    *,
    slug: Optional[str] = None,
    title_contains: Optional[str] = None,
) -> SyncResult:
    """
    Remove leaked button/table stylesheet text from content and ACF strings.

    :param slug: Only touch the post with this slug.
    :param title_contains: Only touch posts whose title contains this text
        (case-insensitive).
    """
    log_section(f"Cleaning CSS leaks in {post_type}")
    result = SyncResult(simulated=run.dry_run)
    params = dict(EDIT_PARAMS)
    if slug:
        params["slug"] = slug
    posts = client.list_posts(post_type, params=params)
    needle = (title_contains or "").lower()

    for post in posts:
        if needle and needle not in _title(post).lower():
            continue
        payload: Dict[str, Any] = {}
        content = _content(post)
        cleaned = strip_css_leaks(content)
        if cleaned != content:
            payload["content"] = cleaned
        acf, changed = patch_strings(post.get("acf") or {}, strip_css_leaks)
        if changed:
            payload["acf"] = acf
        if not payload:
            result.skipped += 1
            continue
        _guarded(post, result, lambda: _patch(client, post_type, post, payload, run, result))

    log_message(f"{post_type}: {result}")
    return result


###############################################################################
# ACF media backfill
###############################################################################

def backfill_acf_media(client: Any, kind: str, run: RunConfig, *, post_type: Optional[str] = None) -> SyncResult:
    """
    Fill empty ACF media fields from what the post already has.

    ``mainImage`` comes from the featured media.  For works, an empty
    ``clientLogo`` is guessed from the media library's "logo" entries.
    """
    post_type = post_type or kind
    log_section(f"Backfilling ACF media for {post_type}")
    result = SyncResult(simulated=run.dry_run)
    posts = client.list_posts(post_type, params={**EDIT_PARAMS, "_fields": "id,slug,title,featured_media,acf"})
    logos: Optional[List[Dict[str, Any]]] = None

    for post in posts:
        acf = post.get("acf") if isinstance(post.get("acf"), dict) else {}
        updates: Dict[str, Any] = {}
        featured = to_media_id(post.get("featured_media"))
        if not to_media_id(acf.get("mainImage")) and featured:
            updates["mainImage"] = featured
        if kind == WORK and not to_media_id(acf.get("clientLogo")):
            if logos is None:
                logos = client.search_media("logo")
            logo = guess_client_logo(str(acf.get("client") or ""), str(post.get("slug") or ""), logos)
            if logo and logo.get("id"):
                updates["clientLogo"] = int(logo["id"])
        if not updates:
            result.skipped += 1
            continue
        _guarded(post, result, lambda: _patch(client, post_type, post, {"acf": updates}, run, result))

    log_message(f"{post_type}: {result}")
    return result


###############################################################################
# External media
###############################################################################

def _external(url: Any, policy: UrlPolicy) -> bool:
    return isinstance(url, str) and url.startswith(("http://", "https://")) and not policy.is_allowed_url(url)


def _rehost_text(text: str, resolver: MediaResolver, policy: UrlPolicy) -> Tuple[str, int]:
    """Return ``(new_text, pending)`` where ``pending`` counts dry-run placeholders."""
    mapping: Dict[str, str] = {}
    pending = 0
    for url in extract_image_urls(text):
        if not _external(url, policy):
            continue
        resolved = resolver.resolve_record(url)
        if resolved is None:
            continue
        if resolved.is_placeholder:
            pending += 1
        elif resolved.source_url:
            mapping[url] = resolved.source_url
    return replace_urls(text, mapping), pending


def sync_external_media(
    client: Any,
    resolver: MediaResolver,
    kind: str,
    policy: UrlPolicy,
    run: RunConfig,
    *,
    post_type: Optional[str] = None,
    slug: Optional[str] = None,
) -> SyncResult:
    """
    Re-host media that posts still load from foreign hosts.

    ACF media fields holding a URL are replaced by the media id, and image
    URLs inside the content and ACF rich-text fields are rewritten to the
    re-hosted copy.
    """
    post_type = post_type or kind
    log_section(f"Re-hosting external media for {post_type}")
    result = SyncResult(simulated=run.dry_run)
    params = dict(EDIT_PARAMS)
    if slug:
        params["slug"] = slug
    posts = client.list_posts(post_type, params=params)

    for post in posts:
        def repair(post=post) -> None:
            acf = dict(post.get("acf") or {}) if isinstance(post.get("acf"), dict) else {}
            payload: Dict[str, Any] = {}
            acf_changes: Dict[str, Any] = {}
            pending = 0

            for name in ACF_MEDIA_FIELDS:
                value = acf.get(name)
                if _external(value, policy):
                    media_id = resolver.resolve(value)
                    if media_id is not None:
                        acf_changes[name] = media_id
            gallery = acf.get("gallery")
            if isinstance(gallery, list) and any(_external(g, policy) for g in gallery):
                acf_changes["gallery"] = [
                    resolver.resolve(g) if _external(g, policy) else to_media_id(g) for g in gallery
                ]
                acf_changes["gallery"] = [g for g in acf_changes["gallery"] if g is not None]

            for name in ACF_RICH_FIELDS:
                value = acf.get(name)
                if isinstance(value, str) and value:
                    new_value, waiting = _rehost_text(value, resolver, policy)
                    pending += waiting
                    if new_value != value:
                        acf_changes[name] = new_value

            content = _content(post)
            if content:
                new_content, waiting = _rehost_text(content, resolver, policy)
                pending += waiting
                if new_content != content:
                    payload["content"] = new_content

            if acf_changes:
                payload["acf"] = acf_changes
            if not payload and not pending:
                result.skipped += 1
                return
            _patch(client, post_type, post, payload, run, result)

        _guarded(post, result, repair)

    log_message(f"{post_type}: {result}")
    return result


###############################################################################
# Source re-application
###############################################################################

def _media_ids(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    return [media_id for media_id in (to_media_id(v) for v in value) if media_id]


def reapply_insight_tags(
    client: Any,
    items: Iterable[ContentItem],
    run: RunConfig,
    context: Optional[SyncContext] = None,
    *,
    post_type: str = INSIGHT,
) -> SyncResult:
    """
    Set the source tags on every destination post sharing the item's base slug.

    Tags missing from WordPress are created first (in dry-run mode they are
    only reported).  Posts whose tags already match are skipped, as are
    items without tags or without a destination post.
    """
    log_section(f"Re-applying source tags to {post_type}")
    context = context or SyncContext()
    result = SyncResult(simulated=run.dry_run)
    posts = client.list_posts(post_type, params={**EDIT_PARAMS, "_fields": "id,slug,tags"})
    groups = group_by_base_slug(posts)

    for item in items:
        matches = groups.get(strip_duplicate_suffix(item.slug), [])
        if not item.tags or not matches:
            if item.tags:
                log_message(f"No {post_type} post for '{item.slug}'", "WARNING")
            result.skipped += 1
            continue

        def repair(item=item, matches=matches) -> None:
            wanted = to_wordpress_terms_payload(item.tags)
            tag_ids = get_or_create_tags(client, item.tags, context, dry_run=run.dry_run)
            for post in matches:
                current = {int(t) for t in post.get("tags") or []}
                if len(tag_ids) == len(wanted) and current == set(tag_ids):
                    result.skipped += 1
                    continue
                _patch(client, post_type, post, {"tags": tag_ids}, run, result)

        _guarded(matches[0], result, repair)

    log_message(f"{post_type}: {result}")
    return result


def backfill_work_gallery(
    client: Any,
    items: Iterable[ContentItem],
    resolver: MediaResolver,
    run: RunConfig,
    *,
    post_type: str = WORK,
) -> SyncResult:
    """
    Fill the empty ACF ``gallery`` and ``coverImage`` of existing works from
    the media of the matching source item.

    Assets go through ``resolver``, so a file already in the media library is
    reused and only missing ones are uploaded.  Fields that hold media are
    left alone.
    """
    log_section(f"Backfilling galleries for {post_type}")
    result = SyncResult(simulated=run.dry_run)
    posts = client.list_posts(post_type, params={**EDIT_PARAMS, "_fields": "id,slug,acf"})
    groups = group_by_base_slug(posts)

    for item in items:
        matches = groups.get(strip_duplicate_suffix(item.slug), [])
        if not matches or not (item.gallery or item.cover_image):
            result.skipped += 1
            continue

        for post in matches:
            def repair(post=post, item=item) -> None:
                acf = post.get("acf") if isinstance(post.get("acf"), dict) else {}
                updates: Dict[str, Any] = {}
                if item.gallery and not _media_ids(acf.get("gallery")):
                    gallery = resolver.resolve_many(item.gallery)
                    if gallery:
                        updates["gallery"] = gallery
                if item.cover_image is not None and not to_media_id(acf.get("coverImage")):
                    cover = resolver.resolve(item.cover_image)
                    if cover is not None:
                        updates["coverImage"] = cover
                if not updates:
                    result.skipped += 1
                    return
                _patch(client, post_type, post, {"acf": updates}, run, result)

            _guarded(post, result, repair)

    log_message(f"{post_type}: {result}")
    return result


###############################################################################
# Duplicates and resets
###############################################################################

def remove_duplicate_posts(client: Any, post_type: str, run: RunConfig, *, without_media: bool = False) -> SyncResult:
    """
    Delete every post that is not the survivor of its base-slug group.

    :param without_media: Also delete posts that have no featured media.
    """
    log_section(f"Removing duplicate {post_type} posts")
    result = SyncResult(simulated=run.dry_run)
    posts = client.list_posts(post_type, params={**EDIT_PARAMS, "_fields": "id,slug,date,date_gmt,featured_media"})

    doomed: List[Dict[str, Any]] = []
    for base, group in group_by_base_slug(posts).items():
        if len(group) < 2:
            continue
        survivor = group[0]
        for post in group[1:]:
            survivor = pick_preferred(survivor, post)
        log_message(f"'{base}': keeping {_label(survivor)}, {len(group) - 1} duplicate(s)")
        doomed.extend(p for p in group if p is not survivor)
    if without_media:
        doomed.extend(p for p in posts if not to_media_id(p.get("featured_media")) and p not in doomed)

    doomed_ids = {id(p) for p in doomed}
    result.skipped = sum(1 for p in posts if id(p) not in doomed_ids)
    for post in doomed:
        _guarded(post, result, lambda post=post: _delete(client, post_type, post, run, result))

    log_message(f"{post_type}: {result}")
    return result


def reset_post_type(client: Any, post_type: str, run: RunConfig) -> SyncResult:
    """Delete every post of ``post_type``."""
    log_section(f"Resetting {post_type}")
    result = SyncResult(simulated=run.dry_run)
    posts = client.list_posts(post_type, params={**EDIT_PARAMS, "_fields": "id,slug"})
    for post in posts:
        _guarded(post, result, lambda post=post: _delete(client, post_type, post, run, result))
    log_message(f"{post_type}: {result}")
    return result
