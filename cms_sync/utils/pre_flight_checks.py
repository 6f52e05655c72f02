from typing import Any, Dict, Optional

import requests

from cms_sync.utils.errors import AuthenticationError, SyncError


class PreFlightCheckError(SyncError):
    """Custom exception for pre-flight check failures."""
    pass


def run_wordpress_pre_flight_checks(client: Any) -> None:
    """
    Verifies that the WordPress credentials work before anything is read or written.

    Args:
        client: A :class:`~cms_sync.migrators.wordpress_migrator.WordPressClient`.

    Raises:
        AuthenticationError: If every password candidate is rejected.
        PreFlightCheckError: If the site cannot be reached or answers unexpectedly.
    """
    print("[INFO] Running WordPress pre-flight checks...")
    try:
        client.resolve_auth()
    except requests.HTTPError as e:
        raise PreFlightCheckError(f"Unexpected answer from {client.base_url}/wp-json/wp/v2/users/me: {e}")
    except requests.RequestException as e:
        raise PreFlightCheckError(f"WordPress is unreachable at {client.base_url}: {e}")
    print("[INFO] WordPress credentials accepted.")


def run_strapi_pre_flight_checks(cfg: Dict[str, Any], session: Optional[requests.Session] = None) -> None:
    """
    Verifies that the Strapi API answers and accepts the token.

    Args:
        cfg: The ``strapi`` configuration section.
        session: Optional session, injected in tests.

    Raises:
        AuthenticationError: If the token is rejected (401/403).
        PreFlightCheckError: If Strapi cannot be reached or answers unexpectedly.
    """
    print("[INFO] Running Strapi pre-flight checks...")
    session = session or requests.Session()
    base_url = (cfg.get("base_url") or "").rstrip("/")
    collection = (cfg.get("collections") or {}).get("work", "works")
    headers = {"Authorization": f"Bearer {cfg.get('api_token', '')}"}

    try:
        response = session.get(
            f"{base_url}/api/{collection}",
            headers=headers,
            params={"pagination[pageSize]": 1},
            timeout=10,
        )
        response.raise_for_status()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        if status in (401, 403):
            raise AuthenticationError("The Strapi API token is invalid or lacks read permission.")
        raise PreFlightCheckError(f"Unexpected error while checking the Strapi API: {e}")
    except requests.RequestException as e:
        raise PreFlightCheckError(f"Strapi is unreachable at {base_url}: {e}")

    print("[INFO] Strapi pre-flight checks passed successfully.")
