"""
Console and file logging for sync runs.

Every message is printed as ``[LEVEL] message`` and appended to
``reports/sync/sync.log`` so a run can be audited afterwards.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Dict, Mapping

_LOG_DIR = os.path.join("reports", "sync")
_LOG_FILE = os.path.join(_LOG_DIR, "sync.log")


def log_message(message: str, level: str = "INFO") -> None:
    print(f"[{level}] {message}")
    os.makedirs(_LOG_DIR, exist_ok=True)
    ts = datetime.now().isoformat(timespec="seconds")
    with open(_LOG_FILE, "a", encoding="utf-8") as f:
        f.write(f"{ts} {level}: {message}\n")


def log_section(title: str) -> None:
    """Print a banner separating the phases of a run."""
    print()
    print(f"=== {title} ===")
    log_message(title, level="SECTION")


def format_summary(results: Mapping[str, Any]) -> str:
    """Render per-kind :class:`~cms_sync.context.SyncResult` counts as a table."""
    lines = [f"{'kind':<10}{'created':>9}{'updated':>9}{'skipped':>9}{'failed':>8}{'deleted':>9}"]
    simulated = False
    for kind, result in results.items():
        counts: Dict[str, int] = result.as_dict()
        simulated = simulated or bool(getattr(result, "simulated", False))
        lines.append(
            f"{kind:<10}{counts['created']:>9}{counts['updated']:>9}"
            f"{counts['skipped']:>9}{counts['failed']:>8}{counts.get('deleted', 0):>9}"
        )
    if simulated:
        lines.append("(dry run: write counts are simulated)")
    return "\n".join(lines)
