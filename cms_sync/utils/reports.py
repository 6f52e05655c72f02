"""
Generation of the per-run sync report CSV.

The :func:`write_sync_report_csv` helper writes one row per processed item
with the action taken and, when known, the destination id and public URL.
The file is meant for a human double-checking a run; nothing reads it back.
"""

from __future__ import annotations

import csv
import os
from typing import Any, Dict, Iterable

DEFAULT_REPORT_PATH = os.path.join("reports", "sync", "sync_report.csv")


def write_sync_report_csv(rows: Iterable[Dict[str, Any]], *, out_path: str = DEFAULT_REPORT_PATH) -> str:
    """Write the sync report.

    Parameters
    ----------
    rows:
        Iterable of dictionaries with ``kind``, ``slug`` and ``action`` keys
        and optional ``destination_id`` and ``url``.
    out_path:
        Location of the CSV file to be written.  The parent directory is
        created automatically.

    Returns
    -------
    str
        The path of the generated CSV file.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["Kind", "Slug", "Action", "DestinationId", "URL"])
        for row in rows:
            writer.writerow([
                row.get("kind", ""),
                row.get("slug", ""),
                row.get("action", ""),
                row.get("destination_id", ""),
                row.get("url", ""),
            ])
    return out_path
