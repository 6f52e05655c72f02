"""
Entry point for the CMS → WordPress content sync.

Reads works and insights from Strapi (or from CSV exports with
``--source csv``) and writes them to WordPress.  Without ``--yes`` only a dry
run is allowed.  Exits with status 1 when the configuration is incomplete,
when credentials are rejected or when any item failed.
"""

import sys
from typing import List, Optional

import requests

from cms_sync.config import load_config, validate_config, RunConfig
from cms_sync.extractors.csv_extractor import make_csv_fetcher
from cms_sync.extractors.strapi_extractor import make_strapi_fetcher
from cms_sync.migrators.wordpress_migrator import WordPressClient
from cms_sync.sync_tool import ContentSyncTool
from cms_sync.utils.cli import add_source_arguments, build_parser, confirmation_error, resolve_dry_run
from cms_sync.utils.errors import AuthenticationError, ConfigurationError, SyncError
from cms_sync.utils.logger import format_summary, log_message
from cms_sync.utils.pre_flight_checks import (
    PreFlightCheckError,
    run_strapi_pre_flight_checks,
    run_wordpress_pre_flight_checks,
)


def parse_args(argv: Optional[List[str]] = None):
    p = build_parser("Sync works and insights from Strapi or CSV exports into WordPress", with_type=False)
    add_source_arguments(p)
    only = p.add_mutually_exclusive_group()
    only.add_argument("--works-only", action="store_true", help="Sync works only")
    only.add_argument("--insights-only", action="store_true", help="Sync insights only")
    p.add_argument("--update", action="store_true", help="Patch drifted fields of posts that already exist")
    p.add_argument("--markdown", action="store_true", help="Store rich text as Markdown instead of HTML")
    p.add_argument("--limit", type=int, default=None, help="Process at most N items per kind")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the sync and return the process exit status.
    """
    args = parse_args(argv)

    try:
        config = load_config(args.config)
        if args.works_csv:
            config["csv"]["works"] = args.works_csv
        if args.insights_csv:
            config["csv"]["insights"] = args.insights_csv
        validate_config(config, source=args.source)
    except ConfigurationError as e:
        log_message(str(e), level="ERROR")
        return 1

    dry_run = resolve_dry_run(args.dry_run, config)
    refusal = confirmation_error(dry_run, args.yes)
    if refusal:
        log_message(refusal, level="ERROR")
        return 1

    run = RunConfig.from_config(
        config,
        dry_run=dry_run,
        confirmed=args.yes,
        works_only=args.works_only,
        insights_only=args.insights_only,
        update_existing=args.update,
        body_format="markdown" if args.markdown else None,
        limit=args.limit,
    )
    client = WordPressClient(config["wordpress"], run=run)

    try:
        run_wordpress_pre_flight_checks(client)
        if args.source == "strapi":
            run_strapi_pre_flight_checks(config["strapi"])
            fetch_items = make_strapi_fetcher(config["strapi"], run=run)
        else:
            fetch_items = make_csv_fetcher(config["csv"])
        tool = ContentSyncTool(config, run, client=client, fetch_items=fetch_items)
        results = tool.sync_all()
    except (AuthenticationError, PreFlightCheckError) as e:
        log_message(str(e), level="ERROR")
        return 1
    except SyncError as e:
        log_message(f"Sync aborted: {e}", level="ERROR")
        return 1
    except (requests.RequestException, OSError, ValueError) as e:
        log_message(f"Source read failed: {e}", level="ERROR")
        return 1

    print()
    print(format_summary(results))
    if tool.context.total_failed:
        log_message(f"{tool.context.total_failed} item(s) failed; see reports/sync/errors.jsonl", level="ERROR")
        return 1
    log_message("Content sync finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
