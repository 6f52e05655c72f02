import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from datetime import timezone

from cms_sync.parsers.normalizer import (
    normalize_item,
    normalize_media,
    parse_boolean,
    parse_date,
    to_media_id,
)

MEDIA_OBJECT = {"id": 7, "url": "/uploads/hero.jpg", "name": "hero.jpg", "alternativeText": "Hero", "mime": "image/jpeg"}


def _media_key(ref):
    return (ref.source_url, ref.filename, ref.alt_text, ref.mime_type)


def test_four_media_shapes_normalize_to_the_same_ref():
    nested = {"id": 7, "attributes": {k: v for k, v in MEDIA_OBJECT.items() if k != "id"}}
    shapes = [
        MEDIA_OBJECT,
        {"data": nested},
        [MEDIA_OBJECT],
        {"data": [nested]},
    ]
    refs = []
    for shape in shapes:
        media = normalize_media(shape, "https://strapi.example.com")
        refs.append(media[0] if isinstance(media, list) else media)
    keys = {_media_key(r) for r in refs}
    assert keys == {("https://strapi.example.com/uploads/hero.jpg", "hero.jpg", "Hero", "image/jpeg")}


def test_empty_media_wrappers():
    assert normalize_media(None) is None
    assert normalize_media({"data": None}) is None
    assert normalize_media({"data": []}) == []


@pytest.mark.parametrize(
    "value, expected",
    [("Yes", True), ("TRUE", True), ("1", True), ("0", False), ("", False), (None, False), ("no", False), (True, True)],
)
def test_parse_boolean(value, expected):
    assert parse_boolean(value) is expected


def test_parse_date_export_format_is_timezone_aware():
    dt = parse_date("Tue Mar 05 2024 00:00:00 GMT+0000 (Coordinated Universal Time)")
    assert dt is not None
    assert (dt.year, dt.month, dt.day) == (2024, 3, 5)
    assert dt.utcoffset() is not None

    naive = parse_date("2024-03-05")
    assert naive.tzinfo == timezone.utc
    assert parse_date("not a date") is None


def test_to_media_id_variants():
    assert to_media_id(12) == 12
    assert to_media_id("12") == 12
    assert to_media_id({"ID": 5}) == 5
    assert to_media_id(0) is None
    assert to_media_id("abc") is None
    assert to_media_id(True) is None


def test_nested_and_flat_envelopes_give_equal_items():
    attributes = {
        "name": "Project X",
        "slug": "project-x",
        "featured": "Yes",
        "client": "Acme &amp; Co",
        "brief": "<p>Brief</p>",
        "mainImage": {"data": {"id": 7, "attributes": {"url": "/uploads/hero.jpg", "name": "hero.jpg"}}},
    }
    nested = {"id": 1, "documentId": "abc", "attributes": attributes}
    flat = {"id": 1, "documentId": "abc", **attributes}

    a = normalize_item(nested, "work", media_base_url="https://strapi.example.com")
    b = normalize_item(flat, "work", media_base_url="https://strapi.example.com")
    assert a == b
    assert a.featured is True
    assert a.client == "Acme & Co"
    assert a.main_image.source_url == "https://strapi.example.com/uploads/hero.jpg"


def test_slug_is_derived_from_the_name():
    item = normalize_item({"name": "Hello World!"}, "insight")
    assert item.slug == "hello-world"


def test_unidentifiable_record_is_skipped():
    assert normalize_item({"brief": "no name, no slug"}, "work") is None
    assert normalize_item("not a record", "work") is None


def test_insight_prefers_content_with_table_when_body_has_none():
    raw = {
        "slug": "report",
        "body": "<p>Summary only</p>",
        "content": "<p>Intro</p><table><tr><td>A</td></tr></table>",
    }
    item = normalize_item(raw, "insight")
    assert "<table>" in item.body


def test_insight_description_falls_back_to_plain_body():
    item = normalize_item({"slug": "post", "body": "<p>Hello <strong>world</strong></p>"}, "insight")
    assert item.description == "Hello world"


def test_insight_tags_from_relation_wrapper():
    raw = {
        "slug": "tagged",
        "tags": {"data": [{"id": 1, "attributes": {"name": "Design"}}, {"id": 2, "attributes": {"name": "design"}}]},
    }
    assert normalize_item(raw, "insight").tags == ["Design"]


def test_wordpress_record_with_acf():
    post = {
        "id": 55,
        "slug": "site-launch",
        "title": {"rendered": "Site &#8211; Launch"},
        "content": {"rendered": "<p>Body</p>"},
        "acf": {"client": "Acme", "featured": True, "status": "✅ Completed"},
        "featured_media_object": {"id": 9, "source_url": "https://cms.example.com/wp-content/uploads/a.png"},
    }
    item = normalize_item(post, "work")
    assert item.name == "Site – Launch"
    assert item.status == "completed"
    assert item.details == "<p>Body</p>"
    assert item.main_image.source_url.endswith("/a.png")


def test_gallery_string_split_on_semicolons():
    raw = {"slug": "g", "gallery": "https://x.example/a.jpg; https://x.example/b.jpg"}
    item = normalize_item(raw, "work")
    assert [g.filename for g in item.gallery] == ["a.jpg", "b.jpg"]


def test_publish_date_with_offset_is_sent_as_utc():
    item = normalize_item({"slug": "a", "name": "A", "publishDate": "2024-01-01T10:00:00+02:00"}, "insight")
    payload = item.to_wordpress_payload(content="x")
    assert payload["date_gmt"] == "2024-01-01T08:00:00"
    assert "date" not in payload
