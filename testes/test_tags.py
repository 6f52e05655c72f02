import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from cms_sync.context import SyncContext
from cms_sync.migrators.wordpress_migrator import get_or_create_tags
from cms_sync.utils.tags import (
    parse_tags_field,
    slugify_tag,
    tag_names_from_value,
    to_wordpress_terms_payload,
)


def test_tags_html_entities_and_whitespace():
    raw = "Research &amp; Strategy |  Design  "
    assert parse_tags_field(raw) == ["Research & Strategy", "Design"]


def test_tags_split_on_pipe_then_comma():
    assert parse_tags_field("alpha|beta|gamma") == ["alpha", "beta", "gamma"]
    assert parse_tags_field("one, two") == ["one", "two"]


def test_tags_deduplicate_case_insensitive_preserve_first():
    raw = "Marketing|marketing|MARKETING|MarketIng"
    assert parse_tags_field(raw) == ["Marketing"]


def test_tag_names_from_cms_shapes():
    assert tag_names_from_value(["UX", "ux", "Data"]) == ["UX", "Data"]
    assert tag_names_from_value([{"name": "UX"}, 4, {"attributes": {"name": "Data"}}]) == ["UX", "Data"]
    assert tag_names_from_value({"data": []}) == []
    assert tag_names_from_value(None) == []


def test_slugify_tag():
    assert slugify_tag("Research & Strategy") == "research-strategy"
    assert slugify_tag("Founder's Notes") == "founders-notes"
    assert slugify_tag("  --  ") == ""


def test_to_wordpress_terms_payload_shape():
    payload = to_wordpress_terms_payload(["Design", "design ", "AI &amp; ML", "!!!"])
    assert payload == [
        {"name": "Design", "slug": "design"},
        {"name": "AI & ML", "slug": "ai-ml"},
    ]


def test_get_or_create_tags_reuses_existing_and_caches(fake_client):
    client = fake_client(tags=[{"id": 3, "name": "Design", "slug": "design"}])
    context = SyncContext()

    assert get_or_create_tags(client, ["Design", "Data"], context, dry_run=False) == [3, 101]
    assert client.writes == [("create_tag", "Data", "data")]

    # second call is served from the run cache
    assert get_or_create_tags(client, ["data", "Design"], context, dry_run=False) == [101, 3]
    assert len(client.writes) == 1


def test_get_or_create_tags_dry_run_creates_nothing(fake_client):
    client = fake_client(tags=[{"id": 3, "name": "Design", "slug": "design"}])
    ids = get_or_create_tags(client, ["Design", "Brand New"], SyncContext(), dry_run=True)
    assert ids == [3]
    assert client.writes == []
