"""
WordPress REST helpers for the content sync.

This module implements the low-level interactions with the WordPress REST
API (``/wp-json``): paginated reads of custom post types, post creation and
updates, ACF writes through both the core route and the ACF-to-REST route,
media search and upload, tag lookup and creation, and deletion.  Every call
goes through a shared :class:`~cms_sync.utils.retry.RateLimiter` and the
:func:`~cms_sync.utils.retry.retry` wrapper.

Authentication uses an application password over HTTP basic auth.  Users
often paste the password with its display spaces, so both the raw and the
whitespace-stripped value are tried against ``/wp/v2/users/me`` and the first
one accepted is kept for the run.

Write methods refuse to run while the client is in dry-run mode, so a
simulated run cannot modify the destination even by accident.

Usage example::

    from cms_sync.config import RunConfig, load_config
    from cms_sync.migrators.wordpress_migrator import WordPressClient

    config = load_config()
    client = WordPressClient(config["wordpress"], run=RunConfig(dry_run=False))
    client.resolve_auth()
    works = client.list_posts("work", params={"status": "any"})
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests
from requests.auth import HTTPBasicAuth

from cms_sync.config import RunConfig
from cms_sync.context import SyncContext
from cms_sync.utils.errors import AuthenticationError, SyncError
from cms_sync.utils.logger import log_message
from cms_sync.utils.retry import RateLimiter, retry
from cms_sync.utils.tags import to_wordpress_terms_payload

PER_PAGE = 100
USER_AGENT = "cms-content-sync/0.1"
AUTH_FAILED_MESSAGE = "WordPress authentication failed: check WP_USER / WP_APP_PASSWORD"


@dataclass(frozen=True)
class DownloadedFile:
    url: str
    content: bytes
    content_type: str


def password_candidates(password: str) -> List[str]:
    """The password as given, then without whitespace, without repeats."""
    candidates: List[str] = []
    for value in (password or "", re.sub(r"\s+", "", password or "")):
        if value and value not in candidates:
            candidates.append(value)
    return candidates


###############################################################################
# Client
###############################################################################

class WordPressClient:
    """Thin, retrying wrapper around one WordPress site's REST API."""

    def __init__(
        self,
        cfg: Dict[str, Any],
        *,
        run: Optional[RunConfig] = None,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (cfg.get("base_url") or "").rstrip("/")
        self.user = cfg.get("user") or ""
        self.password = cfg.get("app_password") or ""
        self.timeout = float(cfg.get("timeout") or 30)
        self.run = run or RunConfig()
        self.session = session or requests.Session()
        self.limiter = limiter or RateLimiter(int(cfg.get("rpm") or 120))
        self.sleep_fn = sleep_fn
        self._auth: Optional[HTTPBasicAuth] = None

    @property
    def api_root(self) -> str:
        return f"{self.base_url}/wp-json"

    # -- auth -----------------------------------------------------------------

    def resolve_auth(self) -> HTTPBasicAuth:
        """
        Find working credentials.

        :return: The basic auth to use for the rest of the run.
        :raises AuthenticationError: if every candidate password gets a 401.
        :raises requests.RequestException: if the site cannot be reached.
        """
        if self._auth is not None:
            return self._auth
        for candidate in password_candidates(self.password):
            auth = HTTPBasicAuth(self.user, candidate)
            self.limiter.wait(sleep_fn=self.sleep_fn)
            resp = self.session.get(
                f"{self.api_root}/wp/v2/users/me",
                auth=auth,
                headers={"User-Agent": USER_AGENT},
                params={"context": "edit"},
                timeout=self.timeout,
            )
            if resp.status_code in (401, 403):
                continue
            resp.raise_for_status()
            self._auth = auth
            return auth
        raise AuthenticationError(AUTH_FAILED_MESSAGE)

    # -- transport ------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        allow_status: Tuple[int, ...] = (),
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        if method.upper() != "GET" and self.run.dry_run:
            raise SyncError(f"Refusing {method} {path} during a dry run")
        url = path if path.startswith("http") else f"{self.api_root}{path}"
        auth = self.resolve_auth()
        all_headers = {"User-Agent": USER_AGENT, **(headers or {})}

        def do_request() -> requests.Response:
            self.limiter.wait(sleep_fn=self.sleep_fn)
            resp = self.session.request(method, url, auth=auth, headers=all_headers, timeout=self.timeout, **kwargs)
            if resp.status_code == 401:
                raise AuthenticationError(AUTH_FAILED_MESSAGE)
            if resp.status_code in allow_status:
                return resp
            resp.raise_for_status()
            return resp

        return retry(
            do_request,
            max_retries=self.run.max_retries,
            delay=self.run.retry_delay,
            label=f"{method} {path}",
            sleep_fn=self.sleep_fn,
        )

    def paginate(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Read every page of a collection route.

        Paging stops at ``X-WP-TotalPages``, at a short page, or at the
        ``rest_post_invalid_page_number`` error WordPress returns past the end.
        """
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = {**(params or {}), "per_page": PER_PAGE, "page": page}
            resp = self._request("GET", path, params=query, allow_status=(400,))
            if resp.status_code == 400:
                if page > 1 and _error_code(resp) == "rest_post_invalid_page_number":
                    break
                resp.raise_for_status()
            batch = resp.json() or []
            if not isinstance(batch, list):
                raise SyncError(f"Unexpected response for {path}: expected a list")
            items.extend(batch)
            total_pages = _int_header(resp, "X-WP-TotalPages")
            if not batch or len(batch) < PER_PAGE or (total_pages is not None and page >= total_pages):
                break
            page += 1
        return items

    # -- posts ----------------------------------------------------------------

    def list_posts(self, post_type: str, *, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return self.paginate(f"/wp/v2/{post_type}", params)

    def find_posts_by_slug(self, post_type: str, slug: str) -> List[Dict[str, Any]]:
        resp = self._request(
            "GET",
            f"/wp/v2/{post_type}",
            params={"slug": slug, "status": "any", "context": "edit", "_fields": "id,slug,date,date_gmt"},
        )
        return resp.json() or []

    def get_post(self, post_type: str, post_id: int) -> Optional[Dict[str, Any]]:
        resp = self._request("GET", f"/wp/v2/{post_type}/{post_id}", params={"context": "edit"}, allow_status=(404,))
        return None if resp.status_code == 404 else resp.json()

    def create_post(self, post_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/wp/v2/{post_type}", json=payload).json()

    def update_post(self, post_type: str, post_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/wp/v2/{post_type}/{post_id}", json=payload).json()

    def delete_post(self, post_type: str, post_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/wp/v2/{post_type}/{post_id}", params={"force": "true"}).json()

    def fetch_acf(self, post_type: str, post_id: int) -> Optional[Dict[str, Any]]:
        """Read ACF fields through the ACF-to-REST route; ``None`` if it is not installed."""
        resp = self._request("GET", f"/acf/v3/{post_type}/{post_id}", allow_status=(404,))
        if resp.status_code == 404:
            return None
        acf = (resp.json() or {}).get("acf")
        return acf if isinstance(acf, dict) else None

    def update_acf(self, post_type: str, post_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Write ACF fields through the ACF-to-REST route; ``None`` if it is not installed."""
        resp = self._request("POST", f"/acf/v3/{post_type}/{post_id}", json={"fields": fields}, allow_status=(404,))
        return None if resp.status_code == 404 else resp.json()

    # -- media ----------------------------------------------------------------

    def get_media(self, media_id: int) -> Optional[Dict[str, Any]]:
        resp = self._request(
            "GET",
            f"/wp/v2/media/{media_id}",
            params={"_fields": "id,source_url,alt_text,media_details,mime_type"},
            allow_status=(404,),
        )
        return None if resp.status_code == 404 else resp.json()

    def search_media(self, term: str) -> List[Dict[str, Any]]:
        resp = self._request(
            "GET", "/wp/v2/media", params={"search": term, "per_page": PER_PAGE, "_fields": "id,source_url"}
        )
        return resp.json() or []

    def upload_media(self, content: bytes, filename: str, content_type: str) -> Dict[str, Any]:
        headers = {
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Type": content_type or "application/octet-stream",
        }
        return self._request("POST", "/wp/v2/media", data=content, headers=headers).json()

    def download_remote_file(self, url: str) -> Optional[DownloadedFile]:
        """Fetch a source binary.  A 404 gives ``None``; other errors propagate."""

        def do_request() -> requests.Response:
            self.limiter.wait(sleep_fn=self.sleep_fn)
            resp = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            if resp.status_code != 404:
                resp.raise_for_status()
            return resp

        resp = retry(
            do_request,
            max_retries=self.run.max_retries,
            delay=self.run.retry_delay,
            label=f"download {url}",
            sleep_fn=self.sleep_fn,
        )
        if resp.status_code == 404:
            return None
        content_type = (resp.headers.get("Content-Type") or "").split(";")[0].strip()
        return DownloadedFile(url=url, content=resp.content, content_type=content_type)

    # -- tags -----------------------------------------------------------------

    def search_tags(self, term: str) -> List[Dict[str, Any]]:
        resp = self._request("GET", "/wp/v2/tags", params={"search": term, "per_page": PER_PAGE})
        return resp.json() or []

    def create_tag(self, name: str, slug: str) -> Dict[str, Any]:
        return self._request("POST", "/wp/v2/tags", json={"name": name, "slug": slug}).json()

    def get_tag(self, tag_id: int) -> Optional[Dict[str, Any]]:
        resp = self._request("GET", f"/wp/v2/tags/{tag_id}", params={"_fields": "id,name,slug"}, allow_status=(404,))
        return None if resp.status_code == 404 else resp.json()


def _error_code(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    return str(body.get("code") or "") if isinstance(body, dict) else ""


def _int_header(resp: requests.Response, name: str) -> Optional[int]:
    value = resp.headers.get(name)
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


###############################################################################
# Taxonomy helpers
###############################################################################

def get_or_create_tags(
    client: Any,
    names: Iterable[str],
    context: SyncContext,
    *,
    dry_run: bool,
) -> List[int]:
    """
    Ensure that the given tag names exist in WordPress and return their ids.

    Each name is looked up by exact slug among the search results before a
    tag is created.  Ids already seen in this run come from
    ``context.tag_ids``.  In dry-run mode missing tags are only reported.

    :param client: A :class:`WordPressClient` (or a test double).
    :param names: Tag labels.
    :param context: The run context holding the slug -> id cache.
    :param dry_run: Whether creation must be simulated.
    :return: Ids of the existing or created tags, without duplicates.
    """
    ids: List[int] = []
    for term in to_wordpress_terms_payload(list(names)):
        slug = term["slug"]
        tag_id = context.tag_ids.get(slug)
        if tag_id is None:
            matches = [t for t in client.search_tags(term["name"]) if t.get("slug") == slug]
            if matches:
                tag_id = int(matches[0]["id"])
            elif dry_run:
                log_message(f"Dry-run: would create tag '{term['name']}'")
                continue
            else:
                created = client.create_tag(term["name"], slug)
                tag_id = int(created["id"])
                log_message(f"Created tag '{term['name']}' ({tag_id})")
            context.tag_ids[slug] = tag_id
            context.tag_names[tag_id] = term["name"]
        if tag_id not in ids:
            ids.append(tag_id)
    return ids
