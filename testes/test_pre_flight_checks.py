import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
import requests

from cms_sync.config import RunConfig
from cms_sync.migrators.wordpress_migrator import WordPressClient
from cms_sync.utils.errors import AuthenticationError
from cms_sync.utils.pre_flight_checks import (
    PreFlightCheckError,
    run_strapi_pre_flight_checks,
    run_wordpress_pre_flight_checks,
)

STRAPI = {"base_url": "http://localhost:1337", "api_token": "token", "collections": {"work": "works"}}


def _wp_client(session):
    cfg = {"base_url": "https://cms.example.com", "user": "editor", "app_password": "secret"}
    return WordPressClient(cfg, run=RunConfig(), session=session, sleep_fn=lambda s: None)


def _unreachable(method, url, kwargs):
    raise requests.ConnectionError("connection refused")


def test_wordpress_checks_pass(fake_session, fake_response):
    run_wordpress_pre_flight_checks(_wp_client(fake_session(lambda m, u, k: fake_response(200, {"id": 1}))))


def test_wordpress_unreachable(fake_session):
    with pytest.raises(PreFlightCheckError):
        run_wordpress_pre_flight_checks(_wp_client(fake_session(_unreachable)))


def test_wordpress_server_error(fake_session, fake_response):
    with pytest.raises(PreFlightCheckError):
        run_wordpress_pre_flight_checks(_wp_client(fake_session(lambda m, u, k: fake_response(500, {}))))


def test_wordpress_rejected_credentials(fake_session, fake_response):
    with pytest.raises(AuthenticationError):
        run_wordpress_pre_flight_checks(_wp_client(fake_session(lambda m, u, k: fake_response(401, {}))))


def test_strapi_checks_pass(fake_session, fake_response):
    session = fake_session(lambda m, u, k: fake_response(200, {"data": []}))
    run_strapi_pre_flight_checks(STRAPI, session=session)
    method, url, kwargs = session.calls[0]
    assert url == "http://localhost:1337/api/works"
    assert kwargs["headers"]["Authorization"] == "Bearer token"


@pytest.mark.parametrize("status", [401, 403])
def test_strapi_rejected_token(fake_session, fake_response, status):
    with pytest.raises(AuthenticationError):
        run_strapi_pre_flight_checks(STRAPI, session=fake_session(lambda m, u, k: fake_response(status, {})))


def test_strapi_unreachable_or_broken(fake_session, fake_response):
    with pytest.raises(PreFlightCheckError):
        run_strapi_pre_flight_checks(STRAPI, session=fake_session(_unreachable))
    with pytest.raises(PreFlightCheckError):
        run_strapi_pre_flight_checks(STRAPI, session=fake_session(lambda m, u, k: fake_response(500, {})))
