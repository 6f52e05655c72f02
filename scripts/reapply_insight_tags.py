#!/usr/bin/env python3
"""
Copy the tags of every source insight onto the WordPress insights that share
its slug (``-2``/``-3`` copies included).  Missing tags are created.

Usage:
  python scripts/reapply_insight_tags.py --dry-run
  python scripts/reapply_insight_tags.py --source csv --insights-csv insights.csv --yes
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allows importing cms_sync/ and models/ when run as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.content_item import INSIGHT  # noqa: E402
from cms_sync.context import SyncContext  # noqa: E402
from cms_sync.repairs import reapply_insight_tags  # noqa: E402
from cms_sync.utils.cli import (  # noqa: E402
    add_source_arguments,
    build_parser,
    connect_wordpress,
    finish,
    load_run,
    load_source_items,
)


def main() -> None:
    p = build_parser("Re-apply source tags to existing WordPress insights", with_type=False)
    add_source_arguments(p)
    args = p.parse_args()

    config, run = load_run(args, source=args.source)
    client = connect_wordpress(config, run)
    items = load_source_items(config, run, args.source, INSIGHT)
    post_type = config["wordpress"]["post_types"].get(INSIGHT, INSIGHT)

    result = reapply_insight_tags(client, items, run, SyncContext(), post_type=post_type)
    finish({INSIGHT: result})


if __name__ == "__main__":
    main()
