import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from models.content_item import ContentItem, MediaRef
from cms_sync.config import RunConfig
from cms_sync.context import SyncContext
from cms_sync.migrators.media_resolver import MediaResolver
from cms_sync.parsers.rich_text import UrlPolicy
from cms_sync.repairs import (
    backfill_acf_media,
    backfill_work_gallery,
    clean_css_leaks,
    reapply_insight_tags,
    remove_duplicate_posts,
    reset_post_type,
    sync_external_media,
)
from cms_sync.utils.errors import AuthenticationError

LIVE = RunConfig(dry_run=False, confirmed=True, write_delay=0)
DRY = RunConfig(dry_run=True, write_delay=0)
POLICY = UrlPolicy(asset_base_url="https://cms.example.com", site_url="https://www.example.com")
UPLOADS = "https://cms.example.com/wp-content/uploads"

LEAKY_POSTS = [
    {
        "id": 1,
        "slug": "alpha",
        "title": {"rendered": "Alpha"},
        "content": {"raw": "Visit Button .modern-btn { color: red; }Text"},
        "acf": {"brief": "x .tg{border:0}"},
    },
    {"id": 2, "slug": "beta", "title": {"rendered": "Beta"}, "content": {"raw": "clean"}, "acf": {}},
]


def test_clean_css_leaks_patches_only_dirty_posts(fake_client):
    client = fake_client(posts={"work": LEAKY_POSTS})
    result = clean_css_leaks(client, "work", LIVE)
    assert (result.updated, result.skipped, result.failed) == (1, 1, 0)
    assert client.writes == [("update_post", "work", 1, {"content": "Text", "acf": {"brief": "x "}})]


def test_clean_css_leaks_filters_and_dry_run(fake_client):
    client = fake_client(posts={"work": LEAKY_POSTS})
    result = clean_css_leaks(client, "work", LIVE, title_contains="BETA")
    assert (result.updated, result.skipped) == (0, 1)

    result = clean_css_leaks(client, "work", DRY, slug="alpha")
    assert result.updated == 1
    assert result.simulated
    assert client.writes == []


def test_backfill_acf_media(fake_client):
    posts = [
        {"id": 1, "slug": "acme-site", "featured_media": 5, "acf": {"client": "Acme"}},
        {"id": 2, "slug": "done", "featured_media": 6, "acf": {"mainImage": 6, "clientLogo": 9}},
    ]
    library = [
        {"id": 8, "source_url": f"{UPLOADS}/acme-logo.png"},
        {"id": 11, "source_url": f"{UPLOADS}/unrelated-logo.png"},
    ]
    client = fake_client(posts={"work": posts}, library=library)
    result = backfill_acf_media(client, "work", LIVE)
    assert (result.updated, result.skipped) == (1, 1)
    assert client.writes == [("update_post", "work", 1, {"acf": {"mainImage": 5, "clientLogo": 8}})]


def test_backfill_insights_ignores_client_logos(fake_client):
    posts = [
        {"id": 3, "slug": "note", "featured_media": 7, "acf": {}},
        {"id": 4, "slug": "bare", "featured_media": 0, "acf": {}},
    ]
    client = fake_client(posts={"insight": posts}, library=[{"id": 8, "source_url": f"{UPLOADS}/note-logo.png"}])
    result = backfill_acf_media(client, "insight", LIVE)
    assert (result.updated, result.skipped) == (1, 1)
    assert client.writes == [("update_post", "insight", 3, {"acf": {"mainImage": 7}})]


def _external_posts():
    return [
        {
            "id": 1,
            "slug": "alpha",
            "content": {"raw": '<p><img src="https://ext.example.org/pic.png"></p>'},
            "acf": {
                "mainImage": "https://ext.example.org/hero.jpg",
                "clientLogo": 12,
                "gallery": ["https://ext.example.org/shot.png", 14],
                "brief": "<p>plain</p>",
            },
        },
        {
            "id": 2,
            "slug": "beta",
            "content": {"raw": f'<p><img src="{UPLOADS}/local.png"></p>'},
            "acf": {},
        },
    ]


def test_sync_external_media_rehosts_fields_and_content(fake_client):
    client = fake_client(posts={"work": _external_posts()})
    resolver = MediaResolver(client, SyncContext(), LIVE, sleep_fn=lambda s: None)

    result = sync_external_media(client, resolver, "work", POLICY, LIVE)

    assert (result.updated, result.skipped, result.failed) == (1, 1, 0)
    uploads = [w[1] for w in client.writes if w[0] == "upload_media"]
    assert uploads == ["hero.jpg", "shot.png", "pic.png"]
    patch = [w for w in client.writes if w[0] == "update_post"]
    assert len(patch) == 1
    payload = patch[0][3]
    assert payload["acf"] == {"mainImage": 101, "gallery": [102, 14]}
    assert f"{UPLOADS}/pic.png" in payload["content"]
    assert "ext.example.org" not in payload["content"]


def test_sync_external_media_dry_run_writes_nothing(fake_client):
    client = fake_client(posts={"work": _external_posts()})
    resolver = MediaResolver(client, SyncContext(), DRY, sleep_fn=lambda s: None)
    result = sync_external_media(client, resolver, "work", POLICY, DRY)
    assert (result.updated, result.skipped) == (1, 1)
    assert client.writes == []


DUPLICATES = [
    {"id": 1, "slug": "a", "date_gmt": "2024-01-01T00:00:00", "featured_media": 3},
    {"id": 2, "slug": "a-2", "date_gmt": "2024-02-01T00:00:00", "featured_media": 4},
    {"id": 3, "slug": "b", "featured_media": 0},
    {"id": 4, "slug": "c", "featured_media": 7},
]


def test_remove_duplicate_posts_keeps_the_survivor(fake_client):
    client = fake_client(posts={"work": DUPLICATES})
    result = remove_duplicate_posts(client, "work", LIVE)
    assert (result.deleted, result.skipped) == (1, 3)
    assert client.writes == [("delete_post", "work", 2)]


def test_remove_duplicate_posts_without_media(fake_client):
    client = fake_client(posts={"work": DUPLICATES})
    result = remove_duplicate_posts(client, "work", LIVE, without_media=True)
    assert (result.deleted, result.skipped) == (2, 2)
    assert [w[2] for w in client.writes] == [2, 3]


def test_reset_post_type(fake_client):
    client = fake_client(posts={"insight": [{"id": 7, "slug": "x"}, {"id": 8, "slug": "y"}]})
    dry = reset_post_type(client, "insight", DRY)
    assert dry.deleted == 2
    assert client.writes == []

    live = reset_post_type(client, "insight", LIVE)
    assert live.deleted == 2
    assert client.writes == [("delete_post", "insight", 7), ("delete_post", "insight", 8)]


def test_one_failing_post_does_not_stop_the_pass(fake_client):
    class FlakyClient(fake_client):
        def delete_post(self, post_type, post_id):
            if post_id == 7:
                raise RuntimeError("boom")
            return super().delete_post(post_type, post_id)

    client = FlakyClient(posts={"insight": [{"id": 7, "slug": "x"}, {"id": 8, "slug": "y"}]})
    result = reset_post_type(client, "insight", LIVE)
    assert (result.deleted, result.failed) == (1, 1)


def test_authentication_errors_abort_the_pass(fake_client):
    class LockedClient(fake_client):
        def delete_post(self, post_type, post_id):
            raise AuthenticationError("rejected")

    client = LockedClient(posts={"insight": [{"id": 7, "slug": "x"}]})
    with pytest.raises(AuthenticationError):
        reset_post_type(client, "insight", LIVE)


TAGGED_INSIGHTS = [
    {"id": 1, "slug": "alpha", "tags": []},
    {"id": 2, "slug": "alpha-2", "tags": [5]},
    {"id": 3, "slug": "beta", "tags": [5]},
]


def _insights():
    return [
        ContentItem(kind="insight", slug="alpha", tags=["Design", "Research"]),
        ContentItem(kind="insight", slug="beta", tags=["Design"]),
        ContentItem(kind="insight", slug="gamma", tags=["Design"]),
        ContentItem(kind="insight", slug="delta"),
    ]


def test_reapply_insight_tags_updates_every_copy(fake_client):
    client = fake_client(posts={"insight": TAGGED_INSIGHTS}, tags=[{"id": 5, "name": "Design", "slug": "design"}])
    context = SyncContext()

    result = reapply_insight_tags(client, _insights(), LIVE, context)

    assert (result.updated, result.skipped, result.failed) == (2, 3, 0)
    assert ("create_tag", "Research", "research") in client.writes
    patches = [w for w in client.writes if w[0] == "update_post"]
    assert patches == [
        ("update_post", "insight", 1, {"tags": [5, 101]}),
        ("update_post", "insight", 2, {"tags": [5, 101]}),
    ]
    assert context.tag_ids == {"design": 5, "research": 101}


def test_reapply_insight_tags_dry_run_creates_nothing(fake_client):
    client = fake_client(posts={"insight": TAGGED_INSIGHTS}, tags=[{"id": 5, "name": "Design", "slug": "design"}])
    result = reapply_insight_tags(client, _insights(), DRY)
    # post 2 already carries the existing tag but would still get the new one
    assert (result.updated, result.skipped) == (2, 3)
    assert result.simulated
    assert client.writes == []


def _strapi_media(name):
    return MediaRef(source_url=f"https://strapi.example.com/uploads/{name}")


def test_backfill_work_gallery_reuses_library_media(fake_client):
    posts = [
        {"id": 1, "slug": "alpha", "acf": {"gallery": False}},
        {"id": 2, "slug": "beta", "acf": {"gallery": [{"ID": 9}], "coverImage": 4}},
    ]
    items = [
        ContentItem(
            kind="work",
            slug="alpha",
            gallery=[_strapi_media("shotone.jpg"), _strapi_media("frame.jpg")],
            cover_image=_strapi_media("cover.jpg"),
        ),
        ContentItem(kind="work", slug="beta", gallery=[_strapi_media("other.jpg")]),
        ContentItem(kind="work", slug="gamma", gallery=[_strapi_media("lost.jpg")]),
    ]
    client = fake_client(posts={"work": posts}, library=[{"id": 20, "source_url": f"{UPLOADS}/shotone.jpg"}])
    resolver = MediaResolver(client, SyncContext(), LIVE, sleep_fn=lambda s: None)

    result = backfill_work_gallery(client, items, resolver, LIVE)

    assert (result.updated, result.skipped, result.failed) == (1, 2, 0)
    assert [w[1] for w in client.writes if w[0] == "upload_media"] == ["frame.jpg", "cover.jpg"]
    patch = [w for w in client.writes if w[0] == "update_post"]
    assert patch == [("update_post", "work", 1, {"acf": {"gallery": [20, 101], "coverImage": 102}})]


def test_backfill_work_gallery_dry_run_uploads_nothing(fake_client):
    posts = [{"id": 1, "slug": "alpha-2", "acf": {}}]
    items = [ContentItem(kind="work", slug="alpha", gallery=[_strapi_media("frame.jpg")])]
    client = fake_client(posts={"work": posts})
    resolver = MediaResolver(client, SyncContext(), DRY, sleep_fn=lambda s: None)

    result = backfill_work_gallery(client, items, resolver, DRY)

    assert result.updated == 1
    assert client.writes == []
