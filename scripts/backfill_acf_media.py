#!/usr/bin/env python3
"""
Fill empty ACF media fields of existing posts: ``mainImage`` from the
featured media and, for works, ``clientLogo`` guessed from the media library.

Usage:
  python scripts/backfill_acf_media.py --type work --dry-run
  python scripts/backfill_acf_media.py --yes
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
from cms_sync.repairs import backfill_acf_media  # noqa: E402
from cms_sync.utils.cli import build_parser, connect_wordpress, finish, load_run, selected_kinds  # noqa: E402


def main() -> None:
    args = build_parser("Backfill ACF mainImage/clientLogo from existing media").parse_args()

    config, run = load_run(args)
    client = connect_wordpress(config, run)
    post_types = config["wordpress"]["post_types"]

    results: Dict[str, SyncResult] = {}
    for kind in selected_kinds(args.kind):
        results[kind] = backfill_acf_media(client, kind, run, post_type=post_types.get(kind, kind))
    finish(results)


if __name__ == "__main__":
    main()
