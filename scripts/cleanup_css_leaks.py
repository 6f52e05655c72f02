#!/usr/bin/env python3
"""
Remove leaked ``.modern-btn``/``.tg`` stylesheet text from posts already in
WordPress (post content and every ACF string).

Usage:
  python scripts/cleanup_css_leaks.py --type insight --dry-run
  python scripts/cleanup_css_leaks.py --slug my-post --yes
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
from cms_sync.repairs import clean_css_leaks  # noqa: E402
from cms_sync.utils.cli import build_parser, connect_wordpress, finish, load_run, selected_kinds  # noqa: E402


def main() -> None:
    p = build_parser("Strip leaked button/table CSS from WordPress content")
    p.add_argument("--slug", default=None, help="Only clean the post with this slug")
    p.add_argument("--title-contains", default=None, help="Only clean posts whose title contains this text")
    args = p.parse_args()

    config, run = load_run(args)
    client = connect_wordpress(config, run)
    post_types = config["wordpress"]["post_types"]

    results: Dict[str, SyncResult] = {}
    for kind in selected_kinds(args.kind):
        results[kind] = clean_css_leaks(
            client, post_types.get(kind, kind), run, slug=args.slug, title_contains=args.title_contains
        )
    finish(results)


if __name__ == "__main__":
    main()
