import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from requests.auth import HTTPBasicAuth

from cms_sync.config import RunConfig
from cms_sync.migrators.wordpress_migrator import (
    WordPressClient,
    password_candidates,
)
from cms_sync.utils.errors import AuthenticationError, SyncError

CFG = {"base_url": "https://cms.example.com/", "user": "editor", "app_password": "abcd efgh ijkl"}
LIVE = RunConfig(dry_run=False, confirmed=True, retry_delay=0)


def _client(session, run=LIVE, cfg=CFG):
    return WordPressClient(cfg, run=run, session=session, sleep_fn=lambda s: None)


def _is_auth_probe(url):
    return url.endswith("/wp-json/wp/v2/users/me")


def test_password_candidates():
    assert password_candidates("abcd efgh ijkl") == ["abcd efgh ijkl", "abcdefghijkl"]
    assert password_candidates("plain") == ["plain"]
    assert password_candidates("") == []


def test_auth_falls_back_to_password_without_spaces(fake_session, fake_response):
    def handler(method, url, kwargs):
        if kwargs["auth"].password == "abcdefghijkl":
            return fake_response(200, {"id": 1})
        return fake_response(401, {"code": "rest_not_logged_in"})

    session = fake_session(handler)
    client = _client(session)
    good = HTTPBasicAuth("editor", "abcdefghijkl")
    assert client.resolve_auth() == good
    assert client.resolve_auth() == good
    assert len(session.calls) == 2
    assert "Authorization" not in session.calls[0][2]["headers"]


def test_requests_carry_the_accepted_credentials(fake_session, fake_response):
    def handler(method, url, kwargs):
        if kwargs["auth"].password != "abcd efgh ijkl":
            return fake_response(401, {})
        if _is_auth_probe(url):
            return fake_response(200, {"id": 1})
        return fake_response(200, [])

    session = fake_session(handler)
    assert _client(session).list_posts("work") == []
    assert [c[2]["auth"] for c in session.calls] == [HTTPBasicAuth("editor", "abcd efgh ijkl")] * 2


def test_every_candidate_rejected_is_an_authentication_error(fake_session, fake_response):
    session = fake_session(lambda method, url, kwargs: fake_response(401, {}))
    with pytest.raises(AuthenticationError):
        _client(session).resolve_auth()


def test_paginate_stops_at_total_pages_header(fake_session, fake_response):
    def handler(method, url, kwargs):
        if _is_auth_probe(url):
            return fake_response(200, {"id": 1})
        page = kwargs["params"]["page"]
        batch = [{"id": page * 1000 + i} for i in range(100)]
        return fake_response(200, batch, headers={"X-WP-TotalPages": "2"})

    session = fake_session(handler)
    posts = _client(session).list_posts("work", params={"status": "any"})
    assert len(posts) == 200
    pages = [c[2]["params"]["page"] for c in session.calls if not _is_auth_probe(c[1])]
    assert pages == [1, 2]
    assert session.calls[1][1] == "https://cms.example.com/wp-json/wp/v2/work"


def test_paginate_stops_at_invalid_page_number(fake_session, fake_response):
    def handler(method, url, kwargs):
        if _is_auth_probe(url):
            return fake_response(200, {"id": 1})
        if kwargs["params"]["page"] == 1:
            return fake_response(200, [{"id": i} for i in range(100)])
        return fake_response(400, {"code": "rest_post_invalid_page_number"})

    assert len(_client(fake_session(handler)).list_posts("insight")) == 100


def test_dry_run_refuses_writes_before_any_request(fake_session, fake_response):
    session = fake_session(lambda method, url, kwargs: fake_response(200, {}))
    client = _client(session, run=RunConfig(dry_run=True))
    with pytest.raises(SyncError):
        client.create_post("work", {"slug": "x"})
    assert session.calls == []


def test_transient_errors_are_retried(fake_session, fake_response):
    answers = [fake_response(503, {}), fake_response(200, [{"id": 1}])]

    def handler(method, url, kwargs):
        if _is_auth_probe(url):
            return fake_response(200, {"id": 1})
        return answers.pop(0)

    assert _client(fake_session(handler)).find_posts_by_slug("work", "x") == [{"id": 1}]
    assert answers == []


def test_unauthorized_request_is_not_retried(fake_session, fake_response):
    def handler(method, url, kwargs):
        if _is_auth_probe(url):
            return fake_response(200, {"id": 1})
        return fake_response(401, {})

    session = fake_session(handler)
    with pytest.raises(AuthenticationError):
        _client(session).get_post("work", 5)
    assert len(session.calls) == 2


def test_missing_acf_route_gives_none(fake_session, fake_response):
    def handler(method, url, kwargs):
        if _is_auth_probe(url):
            return fake_response(200, {"id": 1})
        return fake_response(404, {"code": "rest_no_route"})

    client = _client(fake_session(handler))
    assert client.update_acf("work", 5, {"featured": True}) is None
    assert client.fetch_acf("work", 5) is None


def test_download_remote_file(fake_session, fake_response):
    def handler(method, url, kwargs):
        if url.endswith("gone.jpg"):
            return fake_response(404)
        return fake_response(200, headers={"Content-Type": "image/png; charset=binary"}, content=b"png")

    client = _client(fake_session(handler))
    assert client.download_remote_file("https://strapi.example.com/uploads/gone.jpg") is None
    downloaded = client.download_remote_file("https://strapi.example.com/uploads/logo")
    assert downloaded.content == b"png"
    assert downloaded.content_type == "image/png"
