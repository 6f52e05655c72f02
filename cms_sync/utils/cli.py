"""
Shared command line plumbing for ``main.py`` and the repair scripts.

Every command accepts ``--config``, ``--yes`` and the tri-state
``--dry-run``/``--no-dry-run`` pair.  When neither of the latter is given the
``sync.dry_run`` setting (``DRY_RUN`` in the environment) decides.  A run
that would write refuses to start without ``--yes``.
"""

from __future__ import annotations

import argparse
from typing import Any, Dict, List, Optional, Tuple

import requests

from models.content_item import CONTENT_KINDS, ContentItem
from cms_sync.config import CONFIG_FILE, RunConfig, load_config, validate_config
from cms_sync.context import SyncResult
from cms_sync.extractors.csv_extractor import make_csv_fetcher
from cms_sync.extractors.strapi_extractor import make_strapi_fetcher
from cms_sync.migrators.wordpress_migrator import WordPressClient
from cms_sync.parsers.normalizer import normalize_item
from cms_sync.utils.errors import ConfigurationError, SyncError
from cms_sync.utils.logger import format_summary
from cms_sync.utils.pre_flight_checks import run_wordpress_pre_flight_checks
from cms_sync.utils.slugs import dedupe_by_slug

CONFIRMATION_MESSAGE = "Refusing to write to WordPress without --yes. Re-run with --dry-run to preview the changes."
SOURCES = ("strapi", "csv")


def base_parser() -> argparse.ArgumentParser:
    base = argparse.ArgumentParser(add_help=False)
    base.add_argument("--config", default=CONFIG_FILE, help="Path of the JSON configuration file")
    base.add_argument("--yes", action="store_true", help="Confirm that the run may write to WordPress")
    # tri-state: None -> decided by the configuration
    base.add_argument("--dry-run", dest="dry_run", action="store_true", help="Read everything, write nothing")
    base.add_argument("--no-dry-run", dest="dry_run", action="store_false", help="Force writes (needs --yes)")
    base.set_defaults(dry_run=None)
    return base


def build_parser(description: str, *, with_type: bool = True) -> argparse.ArgumentParser:
    """Parser carrying the shared options plus, optionally, ``--type``."""
    p = argparse.ArgumentParser(parents=[base_parser()], description=description)
    if with_type:
        p.add_argument(
            "--type",
            dest="kind",
            choices=CONTENT_KINDS + ("all",),
            default="all",
            help="Content kind to process",
        )
    return p


def selected_kinds(kind: Optional[str]) -> Tuple[str, ...]:
    if not kind or kind == "all":
        return CONTENT_KINDS
    return (kind,)


def resolve_dry_run(cli_value: Optional[bool], config: Dict[str, Any]) -> bool:
    """CLI (tri-state) > config > live."""
    if cli_value is not None:
        return bool(cli_value)
    return bool(config.get("sync", {}).get("dry_run", False))


def confirmation_error(dry_run: bool, confirmed: bool) -> Optional[str]:
    """The refusal message when a writing run lacks ``--yes``, else ``None``."""
    if not dry_run and not confirmed:
        return CONFIRMATION_MESSAGE
    return None


def load_run(args: argparse.Namespace, *, source: str = "wordpress", **overrides: Any) -> Tuple[Dict[str, Any], RunConfig]:
    """
    Load and validate the configuration for a script, then build its run switches.

    Exits the process with a message when the configuration is incomplete or
    when the run would write without ``--yes``.
    """
    try:
        config = load_config(args.config)
        for key in ("works", "insights"):
            path = getattr(args, f"{key}_csv", None)
            if path:
                config["csv"][key] = path
        validate_config(config, source=source)
    except ConfigurationError as e:
        raise SystemExit(f"[ERROR] {e}")

    dry_run = resolve_dry_run(args.dry_run, config)
    refusal = confirmation_error(dry_run, args.yes)
    if refusal:
        raise SystemExit(f"[ERROR] {refusal}")
    run = RunConfig.from_config(config, dry_run=dry_run, confirmed=args.yes, **overrides)
    return config, run


def connect_wordpress(config: Dict[str, Any], run: RunConfig) -> WordPressClient:
    """Build the WordPress client and check its credentials, exiting on failure."""
    client = WordPressClient(config["wordpress"], run=run)
    try:
        run_wordpress_pre_flight_checks(client)
    except SyncError as e:
        raise SystemExit(f"[ERROR] {e}")
    return client


def add_source_arguments(p: argparse.ArgumentParser) -> None:
    """``--source`` and the CSV paths, for commands that read the source CMS."""
    p.add_argument("--source", choices=SOURCES, default="strapi", help="Where the content comes from")
    p.add_argument("--works-csv", default=None, help="CSV export of works (with --source csv)")
    p.add_argument("--insights-csv", default=None, help="CSV export of insights (with --source csv)")


def load_source_items(config: Dict[str, Any], run: RunConfig, source: str, kind: str) -> List[ContentItem]:
    """
    Read and normalize the source records of ``kind``, one item per base slug.

    Exits the process with a message when the source cannot be read.
    """
    if source == "csv":
        fetch = make_csv_fetcher(config["csv"])
    else:
        fetch = make_strapi_fetcher(config["strapi"], run=run)
    base_url = config.get("strapi", {}).get("base_url") or None
    try:
        raw_records = fetch(kind)
    except (requests.RequestException, OSError, ValueError) as e:
        raise SystemExit(f"[ERROR] Source read failed: {e}")
    items = [normalize_item(raw, kind, media_base_url=base_url) for raw in raw_records]
    return dedupe_by_slug([item for item in items if item is not None])


def finish(results: Dict[str, SyncResult]) -> None:
    """Print the summary table and exit with status 1 when anything failed."""
    print()
    print(format_summary(results))
    if any(r.failed for r in results.values()):
        raise SystemExit(1)
