"""
Reading works and insights back out of WordPress.

Posts come from the REST API with ``_embed`` so featured media and terms
usually arrive inline.  Whatever is missing is hydrated with extra requests
(ACF fields through the ACF route, media ids through ``/wp/v2/media``, tag ids
through ``/wp/v2/tags``), each cached in the run's
:class:`~cms_sync.context.SyncContext`.  The hydrated records then go through
the same normalizer as every other source.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from models.content_item import INSIGHT, WORK, ContentItem
from cms_sync.context import SyncContext
from cms_sync.migrators.media_resolver import guess_client_logo
from cms_sync.parsers.normalizer import normalize_item, normalize_media_node, to_media_id
from cms_sync.parsers.rich_text import UrlPolicy, sanitize_rich_text
from cms_sync.utils.logger import log_message
from cms_sync.utils.slugs import dedupe_by_slug

# ACF keys holding media ids, single and list-valued
ACF_MEDIA_FIELDS = ("mainImage", "coverImage", "clientLogo", "thumbnailImage")
ACF_GALLERY_FIELD = "gallery"
FALLBACK_POST_TYPES = {INSIGHT: "posts"}


def is_likely_test_post(post: Dict[str, Any]) -> bool:
    """Posts created while setting up ACF carry "acf" in both slug and title."""
    slug = str(post.get("slug") or "").lower()
    title = post.get("title")
    if isinstance(title, dict):
        title = title.get("rendered")
    return "acf" in slug and "acf" in str(title or "").lower()


def _media_object(client: Any, value: Any, context: SyncContext) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict) and (value.get("source_url") or value.get("url")):
        return value
    media_id = to_media_id(value)
    if media_id is None:
        return None
    if media_id not in context.media_by_id:
        context.media_by_id[media_id] = client.get_media(media_id)
    return context.media_by_id[media_id]


def _tag_names(client: Any, post: Dict[str, Any], context: SyncContext) -> List[str]:
    embedded = post.get("_embedded") if isinstance(post.get("_embedded"), dict) else {}
    names: List[str] = []
    for group in embedded.get("wp:term") or []:
        for term in group or []:
            if isinstance(term, dict) and term.get("taxonomy") == "post_tag" and term.get("name"):
                names.append(term["name"])
    if names:
        return names
    for tag_id in post.get("tags") or []:
        if not isinstance(tag_id, int):
            continue
        if tag_id not in context.tag_names:
            tag = client.get_tag(tag_id)
            if tag and tag.get("name"):
                context.tag_names[tag_id] = tag["name"]
        if tag_id in context.tag_names:
            names.append(context.tag_names[tag_id])
    return names


def hydrate_post(client: Any, post: Dict[str, Any], post_type: str, context: SyncContext) -> Dict[str, Any]:
    """Return a copy of ``post`` with ACF, media objects and tag names filled in."""
    hydrated = dict(post)
    acf = post.get("acf") if isinstance(post.get("acf"), dict) and post.get("acf") else None
    if acf is None and post.get("id"):
        acf = client.fetch_acf(post_type, post["id"]) or {}
    acf = dict(acf or {})

    for name in ACF_MEDIA_FIELDS:
        if name in acf and acf[name]:
            acf[name] = _media_object(client, acf[name], context)
    if isinstance(acf.get(ACF_GALLERY_FIELD), list):
        gallery = [_media_object(client, entry, context) for entry in acf[ACF_GALLERY_FIELD]]
        acf[ACF_GALLERY_FIELD] = [g for g in gallery if g]
    hydrated["acf"] = acf

    embedded = post.get("_embedded") if isinstance(post.get("_embedded"), dict) else {}
    featured = (embedded.get("wp:featuredmedia") or [None])[0]
    if not (isinstance(featured, dict) and featured.get("source_url")):
        featured = _media_object(client, post.get("featured_media"), context)
    hydrated["featured_media_object"] = featured
    hydrated["tag_names"] = _tag_names(client, post, context)
    return hydrated


def _fetch_posts(client: Any, kind: str, post_type: str) -> List[Dict[str, Any]]:
    posts = client.list_posts(post_type, params={"_embed": "true", "status": "publish"})
    fallback = FALLBACK_POST_TYPES.get(kind)
    if not posts and fallback and fallback != post_type:
        log_message(f"No '{post_type}' posts found; falling back to '{fallback}'", level="WARNING")
        posts = client.list_posts(fallback, params={"_embed": "true", "status": "publish"})
    return posts


def _sort_key(item: ContentItem):
    ts = item.publish_date.timestamp() if item.publish_date else float("-inf")
    try:
        number = int(item.source_id) if item.source_id is not None else -1
    except (TypeError, ValueError):
        number = -1
    return ts, number


def fetch_wordpress_items(
    client: Any,
    kind: str,
    context: SyncContext,
    *,
    post_type: Optional[str] = None,
    policy: Optional[UrlPolicy] = None,
) -> List[ContentItem]:
    """
    Read one kind of content from WordPress as canonical items.

    Test posts are dropped, duplicates collapse to their survivor, the result
    is sorted newest first (then highest id), rich text is sanitized for
    display (external images removed) and works without a client logo get
    one guessed from the media library.
    """
    post_type = post_type or kind
    posts = [p for p in _fetch_posts(client, kind, post_type) if not is_likely_test_post(p)]
    items: List[ContentItem] = []
    for post in posts:
        item = normalize_item(hydrate_post(client, post, post_type, context), kind, media_base_url=client.base_url)
        if item is not None:
            items.append(item)

    items = dedupe_by_slug(items)
    items.sort(key=_sort_key, reverse=True)

    for item in items:
        for attr in ("body", "brief", "scope", "details"):
            value = getattr(item, attr)
            if value:
                setattr(item, attr, sanitize_rich_text(value, policy, drop_external_images=True))
        if kind == WORK and item.client_logo is None and item.client:
            if context.logo_candidates is None:
                context.logo_candidates = client.search_media("logo")
            logo = guess_client_logo(item.client, item.slug, context.logo_candidates)
            if logo:
                item.client_logo = normalize_media_node(logo)
    return items
