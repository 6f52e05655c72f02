#!/usr/bin/env python3
"""
Delete every work and/or insight post from WordPress so a clean sync can
start over.  Media library entries are left alone.

Usage:
  python scripts/reset_content.py --type insight --dry-run
  python scripts/reset_content.py --yes
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict

# Allows importing cms_sync/ and models/ when run as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cms_sync.context import SyncResult  # noqa: E402
from cms_sync.repairs import reset_post_type  # noqa: E402
from cms_sync.utils.cli import build_parser, connect_wordpress, finish, load_run, selected_kinds  # noqa: E402


def main() -> None:
    args = build_parser("Delete all posts of the selected content kinds").parse_args()

    config, run = load_run(args)
    client = connect_wordpress(config, run)
    post_types = config["wordpress"]["post_types"]

    results: Dict[str, SyncResult] = {}
    for kind in selected_kinds(args.kind):
        results[kind] = reset_post_type(client, post_types.get(kind, kind), run)
    finish(results)


if __name__ == "__main__":
    main()
