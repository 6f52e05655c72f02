#!/usr/bin/env python3
"""
Export the works and insights stored in WordPress as canonical JSON.

Posts are read through the same normalizer the sync uses, duplicates are
collapsed, rich text is sanitized for display and works without a client
logo get one guessed from the media library.  Nothing is written to
WordPress.

Usage:
  python scripts/export_content.py --output data/content.json
  python scripts/export_content.py --type work --output data/works.json
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

# Allows importing cms_sync/ and models/ when run as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.content_item import CONTENT_KINDS  # noqa: E402
from cms_sync.config import CONFIG_FILE, RunConfig, load_config, validate_config  # noqa: E402
from cms_sync.context import SyncContext  # noqa: E402
from cms_sync.extractors.wordpress_extractor import fetch_wordpress_items  # noqa: E402
from cms_sync.parsers.rich_text import UrlPolicy  # noqa: E402
from cms_sync.utils.cli import connect_wordpress, selected_kinds  # noqa: E402
from cms_sync.utils.errors import ConfigurationError  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export WordPress works/insights as normalized JSON.")
    parser.add_argument("--config", default=CONFIG_FILE, help="Path of the JSON configuration file")
    parser.add_argument("--type", dest="kind", choices=CONTENT_KINDS + ("all",), default="all")
    parser.add_argument("--output", default="data/content.json", help="Path of the JSON file to write")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    try:
        config = load_config(args.config)
        validate_config(config, source="wordpress")
    except ConfigurationError as e:
        raise SystemExit(f"[ERROR] {e}")

    # read-only: the client refuses every write in dry-run mode
    run = RunConfig.from_config(config, dry_run=True)
    client = connect_wordpress(config, run)
    wp = config["wordpress"]
    policy = UrlPolicy(
        asset_base_url=wp.get("base_url", ""),
        site_url=wp.get("site_url", ""),
        allowed_hosts=tuple(wp.get("allowed_hosts") or ()),
    )
    context = SyncContext()

    doc = {
        "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "source": client.base_url,
    }
    for kind in selected_kinds(args.kind):
        items = fetch_wordpress_items(client, kind, context, post_type=wp["post_types"].get(kind, kind), policy=policy)
        doc[f"{kind}s"] = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]
        print(f"Exported {len(items)} {kind}s")

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"Wrote {out_path}")


if __name__ == "__main__":
    main()
