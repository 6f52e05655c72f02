import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from cms_sync.utils.slugs import (
    build_slug_index,
    dedupe_by_slug,
    group_by_base_slug,
    is_duplicate_slug,
    pick_preferred,
    strip_duplicate_suffix,
)


def test_strip_duplicate_suffix():
    assert strip_duplicate_suffix("project-x-2") == "project-x"
    assert strip_duplicate_suffix("project-x-99") == "project-x"
    assert strip_duplicate_suffix("section-1") == "section-1"
    assert strip_duplicate_suffix("page-100") == "page-100"
    assert strip_duplicate_suffix("-5") == "-5"
    assert strip_duplicate_suffix("plain") == "plain"


def test_is_duplicate_slug():
    assert is_duplicate_slug("report-3")
    assert not is_duplicate_slug("report")
    assert not is_duplicate_slug("top-10-tips-1")


def test_unsuffixed_slug_wins_over_newer_duplicate():
    original = {"id": 1, "slug": "project-x", "date_gmt": "2023-01-01T00:00:00"}
    copy = {"id": 9, "slug": "project-x-2", "date_gmt": "2024-06-01T00:00:00"}
    assert pick_preferred(copy, original) is original
    assert pick_preferred(original, copy) is original


def test_later_date_then_higher_id():
    older = {"id": 5, "slug": "a-2", "date_gmt": "2023-01-01T00:00:00"}
    newer = {"id": 3, "slug": "a-3", "date_gmt": "2024-01-01T00:00:00"}
    assert pick_preferred(older, newer) is newer

    low = {"id": 3, "slug": "b-2", "date": "2024-01-01T00:00:00"}
    high = {"id": 4, "slug": "b-3", "date": "2024-01-01T00:00:00"}
    assert pick_preferred(low, high) is high

    first = {"slug": "c-2"}
    second = {"slug": "c-3"}
    assert pick_preferred(first, second) is first


def test_survivor_does_not_depend_on_input_order():
    posts = [
        {"id": 10, "slug": "project-x-2", "date_gmt": "2024-02-01T00:00:00"},
        {"id": 4, "slug": "project-x", "date_gmt": "2023-02-01T00:00:00"},
        {"id": 12, "slug": "project-x-3", "date_gmt": "2024-03-01T00:00:00"},
        {"id": 7, "slug": "other", "date_gmt": "2023-05-01T00:00:00"},
    ]
    forward = build_slug_index(posts)
    backward = build_slug_index(list(reversed(posts)))
    assert forward["project-x"]["id"] == 4
    assert backward["project-x"]["id"] == 4
    assert set(forward) == {"project-x", "other"}


def test_group_and_dedupe_keep_first_appearance_order():
    posts = [
        {"id": 1, "slug": "beta"},
        {"id": 2, "slug": "alpha"},
        {"id": 3, "slug": "beta-2"},
        {"id": 4, "slug": ""},
    ]
    groups = group_by_base_slug(posts)
    assert list(groups) == ["beta", "alpha"]
    assert [p["id"] for p in groups["beta"]] == [1, 3]
    assert [p["id"] for p in dedupe_by_slug(posts)] == [1, 2]
