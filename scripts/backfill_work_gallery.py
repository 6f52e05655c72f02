#!/usr/bin/env python3
"""
Fill the empty ACF ``gallery`` and ``coverImage`` fields of existing works
from the source CMS.  Files already in the media library are reused; the
others are uploaded.

Usage:
  python scripts/backfill_work_gallery.py --dry-run
  python scripts/backfill_work_gallery.py --source csv --works-csv works.csv --yes
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allows importing cms_sync/ and models/ when run as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.content_item import WORK  # noqa: E402
from cms_sync.context import SyncContext  # noqa: E402
from cms_sync.migrators.media_resolver import MappingMediaMatcher, MediaResolver, SearchMediaMatcher  # noqa: E402
from cms_sync.repairs import backfill_work_gallery  # noqa: E402
from cms_sync.utils.cli import (  # noqa: E402
    add_source_arguments,
    build_parser,
    connect_wordpress,
    finish,
    load_run,
    load_source_items,
)


def main() -> None:
    p = build_parser("Backfill ACF gallery/coverImage of existing works from the source", with_type=False)
    add_source_arguments(p)
    args = p.parse_args()

    config, run = load_run(args, source=args.source)
    client = connect_wordpress(config, run)
    items = load_source_items(config, run, args.source, WORK)

    map_file = config["sync"].get("media_map_file")
    matchers = [SearchMediaMatcher(client)]
    if map_file:
        matchers.insert(0, MappingMediaMatcher.from_file(map_file, client))
    resolver = MediaResolver(client, SyncContext(), run, matchers=matchers)

    post_type = config["wordpress"]["post_types"].get(WORK, WORK)
    result = backfill_work_gallery(client, items, resolver, run, post_type=post_type)
    if not run.dry_run and map_file:
        print(f"Media map updated: {resolver.save_map(map_file)}")
    finish({WORK: result})


if __name__ == "__main__":
    main()
