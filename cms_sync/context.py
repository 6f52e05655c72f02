"""
Per-run state shared by the driver, the media resolver and the extractors.

Nothing here is persisted: a new :class:`SyncContext` is created for every
run and thrown away at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SyncResult:
    """Outcome counters for one content kind."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0
    simulated: bool = False

    def as_dict(self) -> Dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "deleted": self.deleted,
        }

    def __str__(self) -> str:
        mark = " (simulated)" if self.simulated else ""
        text = (
            f"created={self.created}{mark}, updated={self.updated}{mark}, "
            f"skipped={self.skipped}, failed={self.failed}"
        )
        if self.deleted:
            text += f", deleted={self.deleted}{mark}"
        return text


@dataclass
class SyncContext:
    # source URL -> resolved media (None when the source answered 404)
    media_by_url: Dict[str, Any] = field(default_factory=dict)
    # destination media id -> media object, used when hydrating WordPress reads
    media_by_id: Dict[int, Optional[Dict[str, Any]]] = field(default_factory=dict)
    tag_ids: Dict[str, int] = field(default_factory=dict)
    tag_names: Dict[int, str] = field(default_factory=dict)
    logo_candidates: Optional[List[Dict[str, Any]]] = None
    acf_endpoint_available: bool = True
    results: Dict[str, SyncResult] = field(default_factory=dict)
    report_rows: List[Dict[str, Any]] = field(default_factory=list)

    def result_for(self, kind: str, *, simulated: bool = False) -> SyncResult:
        if kind not in self.results:
            self.results[kind] = SyncResult(simulated=simulated)
        return self.results[kind]

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.results.values())
