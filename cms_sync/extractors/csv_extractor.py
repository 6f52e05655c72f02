import csv
from typing import Any, Callable, Dict, List

from cms_sync.parsers.normalizer import parse_boolean
from cms_sync.utils.logger import log_message
from cms_sync.utils.statuses import parse_status
from cms_sync.utils.tags import parse_tags_field

# Column names used by the Webflow CMS export the content originally lived in
WORK_COLUMNS = {
    "name": "Name",
    "slug": "Slug",
    "status": "Project status",
    "featured": "Featured project?",
    "brief": "Project brief",
    "scope": "Scope of work",
    "details": "Project details",
    "client": "Client",
    "videoUrl": "Youtube video",
    "mainImage": "Main project image",
    "clientLogo": "Client logo",
    "gallery": "Image gallery",
}

INSIGHT_COLUMNS = {
    "name": "Name",
    "slug": "Slug",
    "publishDate": "Datepublished",
    "tags": "Tags",
    "body": "Post body",
    "featured": "Featured?",
    "description": "Post Description",
    "mainImage": "Main image",
    "thumbnailImage": "Thumbnail image",
}


def read_csv_rows(file_path: str) -> List[Dict[str, str]]:
    """Read a CSV export into a list of row dicts with stripped values.

    Args:
        file_path (str): Path of the CSV file.

    Returns:
        list: One dict per data row.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    with open(file_path, mode="r", encoding="utf-8-sig", newline="") as csvfile:
        reader = csv.DictReader(csvfile)
        return [
            {(k or "").strip(): (v or "").strip() for k, v in row.items() if k is not None}
            for row in reader
        ]


def _gallery_urls(value: str) -> List[str]:
    return [url.strip() for url in (value or "").split(";") if url.strip()]


def _first_row_per_slug(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    result = []
    for record in records:
        slug = (record.get("slug") or "").strip().lower()
        if slug and slug in seen:
            continue
        seen.add(slug)
        result.append(record)
    return result


def extract_works_from_csv(file_path: str) -> List[Dict[str, Any]]:
    """Turn the works export into flat records ready for the normalizer.

    Raises:
        ValueError: If a row cannot be read.
    """
    records = []
    for row_num, row in enumerate(read_csv_rows(file_path), start=2):
        try:
            records.append({
                "name": row.get(WORK_COLUMNS["name"], ""),
                "slug": row.get(WORK_COLUMNS["slug"], ""),
                "status": parse_status(row.get(WORK_COLUMNS["status"])),
                "featured": parse_boolean(row.get(WORK_COLUMNS["featured"])),
                "brief": row.get(WORK_COLUMNS["brief"]) or None,
                "scope": row.get(WORK_COLUMNS["scope"]) or None,
                "details": row.get(WORK_COLUMNS["details"]) or None,
                "client": row.get(WORK_COLUMNS["client"]) or None,
                "videoUrl": row.get(WORK_COLUMNS["videoUrl"]) or None,
                "mainImage": row.get(WORK_COLUMNS["mainImage"]) or None,
                "clientLogo": row.get(WORK_COLUMNS["clientLogo"]) or None,
                "gallery": _gallery_urls(row.get(WORK_COLUMNS["gallery"], "")),
            })
        except Exception as e:
            raise ValueError(f"Error processing row {row_num} of {file_path}: {e}") from e
    return _first_row_per_slug(records)


def extract_insights_from_csv(file_path: str) -> List[Dict[str, Any]]:
    """Turn the insights export into flat records; archived and draft rows are skipped.

    Raises:
        ValueError: If a row cannot be read.
    """
    records = []
    skipped = 0
    for row_num, row in enumerate(read_csv_rows(file_path), start=2):
        if parse_boolean(row.get("Archived")) or parse_boolean(row.get("Draft")):
            skipped += 1
            continue
        try:
            records.append({
                "name": row.get(INSIGHT_COLUMNS["name"], ""),
                "slug": row.get(INSIGHT_COLUMNS["slug"], ""),
                "publishDate": row.get(INSIGHT_COLUMNS["publishDate"]) or None,
                "tags": parse_tags_field(row.get(INSIGHT_COLUMNS["tags"], "")),
                "body": row.get(INSIGHT_COLUMNS["body"]) or None,
                "featured": parse_boolean(row.get(INSIGHT_COLUMNS["featured"])),
                "description": row.get(INSIGHT_COLUMNS["description"]) or None,
                "mainImage": row.get(INSIGHT_COLUMNS["mainImage"]) or None,
                "thumbnailImage": row.get(INSIGHT_COLUMNS["thumbnailImage"]) or None,
            })
        except Exception as e:
            raise ValueError(f"Error processing row {row_num} of {file_path}: {e}") from e
    if skipped:
        log_message(f"Skipped {skipped} archived or draft rows in {file_path}")
    return _first_row_per_slug(records)


def make_csv_fetcher(csv_cfg: Dict[str, str]) -> Callable[[str], List[Dict[str, Any]]]:
    """Return a ``kind -> records`` callable reading the configured export files."""
    readers = {"work": extract_works_from_csv, "insight": extract_insights_from_csv}
    paths = {"work": csv_cfg.get("works", ""), "insight": csv_cfg.get("insights", "")}

    def fetch(kind: str) -> List[Dict[str, Any]]:
        path = paths.get(kind) or ""
        if not path:
            log_message(f"No CSV configured for {kind}; nothing to read", level="WARNING")
            return []
        return readers[kind](path)

    return fetch
