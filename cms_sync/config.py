"""
Configuration loading.

Settings come from, in order of precedence: the process environment, the
``.env`` files of the surrounding project (``.env``, ``frontend/.env``,
``backend/.env``, loaded with python-dotenv without overriding anything
already set), an optional JSON file, and finally built-in defaults.  The
result is a plain dict with ``wordpress``, ``strapi``, ``csv`` and ``sync``
sections.  :class:`RunConfig` freezes the per-run switches that the CLI
flags can override.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv

from cms_sync.utils.errors import ConfigurationError

CONFIG_FILE = os.path.join("config", "sync_config.json")
DEFAULT_ENV_FILES = (".env", os.path.join("frontend", ".env"), os.path.join("backend", ".env"))
BOOTSTRAP_TOKEN_FILE = os.path.join("backend", "TOKEN.txt")
DEFAULT_STRAPI_URL = "http://localhost:1337"


def load_env_files(paths: Iterable[str] = DEFAULT_ENV_FILES) -> List[str]:
    """Load every existing dotenv file; variables already set are kept."""
    loaded: List[str] = []
    for path in paths:
        if os.path.exists(path):
            load_dotenv(path, override=False)
            loaded.append(path)
    return loaded


def read_bootstrap_token(path: str = BOOTSTRAP_TOKEN_FILE) -> str:
    """Return the API token written by the backend bootstrap, if any."""
    if not os.path.exists(path):
        return ""
    with open(path, "r", encoding="utf-8") as f:
        return f.read().strip()


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() == "true"


def load_config(
    config_file: Optional[str] = None,
    *,
    env_files: Iterable[str] = DEFAULT_ENV_FILES,
) -> Dict[str, Any]:
    """
    Build the configuration dictionary.

    :param config_file: Optional JSON file whose values win over the environment.
    :param env_files: dotenv files to load first.
    :return: Configuration with every section and key present.
    :raises ConfigurationError: if ``config_file`` is not valid JSON.
    """
    load_env_files(env_files)

    config: Dict[str, Any] = {}
    if config_file and os.path.exists(config_file):
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid config file {config_file}: {e}") from e

    config.setdefault("wordpress", {})
    wp = config["wordpress"]
    wp.setdefault("base_url", os.getenv("WP_URL") or os.getenv("PUBLIC_WP_URL") or "")
    wp.setdefault("site_url", os.getenv("PUBLIC_SITE_URL") or os.getenv("SITE_URL") or "")
    wp.setdefault("user", os.getenv("WP_USER", ""))
    wp.setdefault("app_password", os.getenv("WP_APP_PASSWORD", ""))
    wp.setdefault("rpm", 120)
    wp.setdefault("timeout", 30)
    wp.setdefault("allowed_hosts", [])
    wp.setdefault("post_types", {"work": "work", "insight": "insight"})

    config.setdefault("strapi", {})
    strapi = config["strapi"]
    strapi.setdefault("base_url", os.getenv("STRAPI_URL") or DEFAULT_STRAPI_URL)
    strapi.setdefault("api_token", os.getenv("STRAPI_API_TOKEN") or read_bootstrap_token())
    strapi.setdefault("collections", {"work": "works", "insight": "insights"})
    strapi.setdefault("page_size", 100)

    config.setdefault("csv", {})
    config["csv"].setdefault("works", os.getenv("WORKS_CSV", ""))
    config["csv"].setdefault("insights", os.getenv("INSIGHTS_CSV", ""))

    config.setdefault("sync", {})
    sync = config["sync"]
    sync.setdefault("dry_run", _env_flag("DRY_RUN"))
    sync.setdefault("write_delay", 0.25)
    sync.setdefault("max_retries", 3)
    sync.setdefault("retry_delay", 1.0)
    sync.setdefault("media_map_file", os.path.join("reports", "media_map.json"))
    sync.setdefault("limit", None)
    return config


def validate_config(config: Dict[str, Any], *, source: str = "strapi") -> None:
    """Raise :class:`ConfigurationError` naming every missing setting for ``source``."""
    wp = config.get("wordpress", {})
    missing: List[str] = []
    if not wp.get("base_url"):
        missing.append("WP_URL")
    if not wp.get("user"):
        missing.append("WP_USER")
    if not wp.get("app_password"):
        missing.append("WP_APP_PASSWORD")
    if source == "strapi":
        strapi = config.get("strapi", {})
        if not strapi.get("base_url"):
            missing.append("STRAPI_URL")
        if not strapi.get("api_token"):
            missing.append(f"STRAPI_API_TOKEN (or {BOOTSTRAP_TOKEN_FILE})")
    elif source == "csv":
        csv_cfg = config.get("csv", {})
        if not csv_cfg.get("works") and not csv_cfg.get("insights"):
            missing.append("WORKS_CSV or INSIGHTS_CSV")
    if missing:
        raise ConfigurationError("Missing required configuration: " + ", ".join(missing))


@dataclass(frozen=True)
class RunConfig:
    """Switches for one run.  Defaults are the safe ones."""

    dry_run: bool = True
    confirmed: bool = False
    works_only: bool = False
    insights_only: bool = False
    update_existing: bool = False
    body_format: str = "html"
    write_delay: float = 0.25
    max_retries: int = 3
    retry_delay: float = 1.0
    limit: Optional[int] = None

    @property
    def kinds(self) -> Tuple[str, ...]:
        if self.works_only:
            return ("work",)
        if self.insights_only:
            return ("insight",)
        return ("work", "insight")

    @classmethod
    def from_config(cls, config: Dict[str, Any], **overrides: Any) -> "RunConfig":
        """Read the ``sync`` section, then apply non-``None`` overrides."""
        sync = config.get("sync", {})
        run = cls(
            dry_run=bool(sync.get("dry_run", True)),
            write_delay=float(sync.get("write_delay", 0.25)),
            max_retries=int(sync.get("max_retries", 3)),
            retry_delay=float(sync.get("retry_delay", 1.0)),
            limit=sync.get("limit"),
        )
        return replace(run, **{k: v for k, v in overrides.items() if v is not None})
