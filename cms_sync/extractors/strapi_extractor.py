"""
Strapi REST reads.

Entries are requested from ``/api/{collection}`` with ``populate=*`` so that
media and relations come back inline, one page at a time, until the
``meta.pagination.pageCount`` reported by Strapi is reached.  Both the v4
nested envelope and the v5 flat one are returned untouched; telling them
apart is the normalizer's job.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import requests

from cms_sync.config import RunConfig
from cms_sync.utils.errors import AuthenticationError
from cms_sync.utils.logger import log_message
from cms_sync.utils.retry import retry


def strapi_headers(cfg: Dict[str, Any]) -> Dict[str, str]:
    """
    Construct the headers required for Strapi API requests.

    :param cfg: The ``strapi`` configuration section with ``api_token``.
    :return: A dictionary of headers including Authorization when a token is set.
    """
    headers = {"Accept": "application/json"}
    if cfg.get("api_token"):
        headers["Authorization"] = f"Bearer {cfg['api_token']}"
    return headers


def fetch_strapi_entries(
    cfg: Dict[str, Any],
    collection: str,
    *,
    session: Optional[requests.Session] = None,
    run: Optional[RunConfig] = None,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> List[Dict[str, Any]]:
    """
    Read every entry of ``collection``.

    :param cfg: The ``strapi`` configuration section.
    :param collection: Plural API id, e.g. ``works``.
    :return: The raw ``data`` entries of all pages.
    :raises AuthenticationError: on 401/403.
    :raises requests.HTTPError: on other failures, after retries.
    """
    session = session or requests.Session()
    run = run or RunConfig()
    base_url = (cfg.get("base_url") or "").rstrip("/")
    page_size = int(cfg.get("page_size") or 100)
    entries: List[Dict[str, Any]] = []
    page = 1
    while True:
        params = {"populate": "*", "pagination[page]": page, "pagination[pageSize]": page_size}

        def do_request() -> requests.Response:
            resp = session.get(
                f"{base_url}/api/{collection}", headers=strapi_headers(cfg), params=params, timeout=30
            )
            if resp.status_code in (401, 403):
                raise AuthenticationError(f"Strapi rejected the API token for /api/{collection}")
            resp.raise_for_status()
            return resp

        body = retry(
            do_request,
            max_retries=run.max_retries,
            delay=run.retry_delay,
            label=f"GET /api/{collection}",
            sleep_fn=sleep_fn,
        ).json() or {}
        batch = body.get("data") or []
        entries.extend(batch)
        pagination = (body.get("meta") or {}).get("pagination") or {}
        page_count = int(pagination.get("pageCount") or 1)
        if not batch or page >= page_count:
            break
        page += 1
    log_message(f"Fetched {len(entries)} entries from Strapi /api/{collection}")
    return entries


def make_strapi_fetcher(
    cfg: Dict[str, Any],
    *,
    session: Optional[requests.Session] = None,
    run: Optional[RunConfig] = None,
) -> Callable[[str], List[Dict[str, Any]]]:
    """Return a ``kind -> raw entries`` callable for the configured collections."""
    collections = cfg.get("collections") or {"work": "works", "insight": "insights"}
    session = session or requests.Session()

    def fetch(kind: str) -> List[Dict[str, Any]]:
        return fetch_strapi_entries(cfg, collections[kind], session=session, run=run)

    return fetch
