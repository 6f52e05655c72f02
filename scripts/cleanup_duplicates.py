#!/usr/bin/env python3
"""
Delete duplicate posts: within every group of posts sharing a base slug
(``project-x``, ``project-x-2``, ...) only the survivor is kept.  The survivor
is the post without a duplicate suffix, then the most recent one, then the
one with the highest id.

Usage:
  python scripts/cleanup_duplicates.py --type work --dry-run
  python scripts/cleanup_duplicates.py --without-media --yes
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
from cms_sync.repairs import remove_duplicate_posts  # noqa: E402
from cms_sync.utils.cli import build_parser, connect_wordpress, finish, load_run, selected_kinds  # noqa: E402


def main() -> None:
    p = build_parser("Delete duplicate WordPress posts, keeping one survivor per base slug")
    p.add_argument("--without-media", action="store_true", help="Also delete posts without featured media")
    args = p.parse_args()

    config, run = load_run(args)
    client = connect_wordpress(config, run)
    post_types = config["wordpress"]["post_types"]

    results: Dict[str, SyncResult] = {}
    for kind in selected_kinds(args.kind):
        results[kind] = remove_duplicate_posts(
            client, post_types.get(kind, kind), run, without_media=args.without_media
        )
    finish(results)


if __name__ == "__main__":
    main()
