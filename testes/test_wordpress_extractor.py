import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from cms_sync.context import SyncContext
from cms_sync.extractors.wordpress_extractor import fetch_wordpress_items, is_likely_test_post
from cms_sync.parsers.rich_text import UrlPolicy

POLICY = UrlPolicy(asset_base_url="https://cms.example.com", site_url="https://www.example.com")
UPLOADS = "https://cms.example.com/wp-content/uploads"


def _post(post_id, slug, date, **extra):
    post = {
        "id": post_id,
        "slug": slug,
        "date_gmt": date,
        "title": {"rendered": slug.title()},
        "content": {"rendered": "<p>Text</p>"},
        "acf": {},
    }
    post.update(extra)
    return post


def test_is_likely_test_post():
    assert is_likely_test_post({"slug": "acf-test", "title": {"rendered": "ACF Test"}})
    assert not is_likely_test_post({"slug": "acf-test", "title": {"rendered": "Real title"}})


def test_works_are_hydrated_deduped_and_sorted(fake_client):
    posts = [
        _post(10, "alpha", "2024-01-01T00:00:00", featured_media=5, acf={"client": "Acme Corp"},
              content={"rendered": '<p>Hi <img src="https://ext.example.org/x.png"></p>'}),
        _post(11, "alpha-2", "2024-02-01T00:00:00", acf={"client": "Acme Corp"}),
        _post(12, "beta", "2024-03-01T00:00:00"),
        _post(13, "acf-test", "2024-04-01T00:00:00", title={"rendered": "ACF test"}),
    ]
    library = [
        {"id": 5, "source_url": f"{UPLOADS}/alpha.jpg"},
        {"id": 8, "source_url": f"{UPLOADS}/acme-logo.png"},
        {"id": 9, "source_url": f"{UPLOADS}/other-logo.png"},
    ]
    client = fake_client(posts={"work": posts}, library=library)

    items = fetch_wordpress_items(client, "work", SyncContext(), policy=POLICY)

    assert [i.slug for i in items] == ["beta", "alpha"]
    alpha = items[1]
    assert alpha.main_image.source_url == f"{UPLOADS}/alpha.jpg"
    assert alpha.client_logo.source_url == f"{UPLOADS}/acme-logo.png"
    assert "ext.example.org" not in alpha.details
    assert items[0].client_logo is None
    assert client.writes == []


def test_insights_fall_back_to_posts_and_resolve_tag_ids(fake_client):
    post = _post(20, "report", "2024-05-01T00:00:00", tags=[4])
    client = fake_client(posts={"posts": [post]}, tags=[{"id": 4, "name": "Data", "slug": "data"}])
    context = SyncContext()

    items = fetch_wordpress_items(client, "insight", context)

    assert [i.slug for i in items] == ["report"]
    assert items[0].tags == ["Data"]
    assert context.tag_names == {4: "Data"}


def test_embedded_terms_win_over_tag_ids(fake_client):
    post = _post(
        21, "embedded", "2024-05-01T00:00:00",
        tags=[4],
        _embedded={"wp:term": [[{"taxonomy": "post_tag", "name": "Inline"}]]},
    )
    client = fake_client(posts={"insight": [post]})
    items = fetch_wordpress_items(client, "insight", SyncContext())
    assert items[0].tags == ["Inline"]
