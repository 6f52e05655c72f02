#!/usr/bin/env python3
"""
Re-host media that existing posts still load from foreign hosts.

ACF media fields holding a URL become media ids; image URLs inside the
content and the ACF rich-text fields are rewritten to the uploaded copy.
Resolutions are merged into the media map file so later runs reuse them.

Usage:
  python scripts/sync_external_media.py --type insight --dry-run
  python scripts/sync_external_media.py --slug my-work --yes
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict

# Allows importing cms_sync/ and models/ when run as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cms_sync.context import SyncContext, SyncResult  # noqa: E402
from cms_sync.migrators.media_resolver import MappingMediaMatcher, MediaResolver, SearchMediaMatcher  # noqa: E402
from cms_sync.parsers.rich_text import UrlPolicy  # noqa: E402
from cms_sync.repairs import sync_external_media  # noqa: E402
from cms_sync.utils.cli import build_parser, connect_wordpress, finish, load_run, selected_kinds  # noqa: E402


def main() -> None:
    p = build_parser("Upload externally hosted media and point posts at the uploaded copies")
    p.add_argument("--slug", default=None, help="Only repair the post with this slug")
    args = p.parse_args()

    config, run = load_run(args)
    client = connect_wordpress(config, run)
    wp = config["wordpress"]
    policy = UrlPolicy(
        asset_base_url=wp.get("base_url", ""),
        site_url=wp.get("site_url", ""),
        allowed_hosts=tuple(wp.get("allowed_hosts") or ()),
    )
    map_file = config["sync"].get("media_map_file")
    matchers = [SearchMediaMatcher(client)]
    if map_file:
        matchers.insert(0, MappingMediaMatcher.from_file(map_file, client))
    resolver = MediaResolver(client, SyncContext(), run, matchers=matchers)

    results: Dict[str, SyncResult] = {}
    for kind in selected_kinds(args.kind):
        results[kind] = sync_external_media(
            client, resolver, kind, policy, run, post_type=wp["post_types"].get(kind, kind), slug=args.slug
        )
    if not run.dry_run and map_file:
        print(f"Media map updated: {resolver.save_map(map_file)}")
    finish(results)


if __name__ == "__main__":
    main()
