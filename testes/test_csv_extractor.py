import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import csv

import pytest

from cms_sync.extractors.csv_extractor import (
    extract_insights_from_csv,
    extract_works_from_csv,
    make_csv_fetcher,
    read_csv_rows,
)


def _write_csv(path, header, rows):
    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return str(path)


WORK_HEADER = [
    "Name", "Slug", "Project status", "Featured project?", "Project brief", "Client",
    "Main project image", "Image gallery",
]
INSIGHT_HEADER = ["Name", "Slug", "Archived", "Draft", "Tags", "Post body", "Featured?", "Datepublished"]


def test_read_csv_rows_strips_bom_and_whitespace(tmp_path):
    path = _write_csv(tmp_path / "rows.csv", [" Name ", "Slug"], [["  Alpha ", "alpha"]])
    assert read_csv_rows(path) == [{"Name": "Alpha", "Slug": "alpha"}]


def test_extract_works_maps_columns(tmp_path):
    path = _write_csv(
        tmp_path / "works.csv",
        WORK_HEADER,
        [
            ["Alpha", "alpha", "✅ Completed", "true", "<p>Brief</p>", "Acme",
             "https://cdn.example.org/a.jpg", "https://cdn.example.org/g1.jpg; https://cdn.example.org/g2.jpg"],
            ["Alpha again", "alpha", "\U0001f4c3 Proposal", "false", "", "", "", ""],
            ["Beta", "beta", "⌚ In progress", "", "", "", "", ""],
        ],
    )
    works = extract_works_from_csv(path)
    assert [w["slug"] for w in works] == ["alpha", "beta"]
    alpha = works[0]
    assert alpha["status"] == "completed"
    assert alpha["featured"] is True
    assert alpha["client"] == "Acme"
    assert alpha["gallery"] == ["https://cdn.example.org/g1.jpg", "https://cdn.example.org/g2.jpg"]
    assert works[1]["status"] == "in_progress"
    assert works[1]["brief"] is None


def test_extract_insights_skips_archived_and_drafts(tmp_path):
    path = _write_csv(
        tmp_path / "insights.csv",
        INSIGHT_HEADER,
        [
            ["Live", "live", "false", "false", "UX|Data|ux", "<p>Body</p>", "yes", "2024-03-05"],
            ["Old", "old", "true", "false", "", "", "", ""],
            ["Wip", "wip", "false", "true", "", "", "", ""],
        ],
    )
    insights = extract_insights_from_csv(path)
    assert len(insights) == 1
    assert insights[0]["tags"] == ["UX", "Data"]
    assert insights[0]["featured"] is True
    assert insights[0]["publishDate"] == "2024-03-05"


def test_csv_fetcher_reads_configured_files(tmp_path):
    works = _write_csv(tmp_path / "works.csv", WORK_HEADER, [["Alpha", "alpha", "", "", "", "", "", ""]])
    fetch = make_csv_fetcher({"works": works, "insights": ""})
    assert [r["slug"] for r in fetch("work")] == ["alpha"]
    assert fetch("insight") == []


def test_missing_csv_file_raises(tmp_path):
    fetch = make_csv_fetcher({"works": str(tmp_path / "missing.csv")})
    with pytest.raises(FileNotFoundError):
        fetch("work")
