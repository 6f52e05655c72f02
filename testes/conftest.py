import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
import requests

from cms_sync.migrators.wordpress_migrator import DownloadedFile


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # reports/ and logs land in a throwaway directory
    monkeypatch.chdir(tmp_path)


class FakeWordPressClient:
    """In-memory stand-in for WordPressClient that records every write."""

    def __init__(self, posts=None, files=None, library=None, tags=None, acf_route=True):
        self.base_url = "https://cms.example.com"
        self.posts = {k: [dict(p) for p in v] for k, v in (posts or {}).items()}
        # url -> DownloadedFile, or None for a 404
        self.files = dict(files or {})
        self.library = list(library or [])
        self.tags = list(tags or [])
        self.acf_route = acf_route
        self.writes = []
        self.downloads = []
        self._next_id = 100

    def _new_id(self):
        self._next_id += 1
        return self._next_id

    # reads
    def list_posts(self, post_type, *, params=None):
        posts = self.posts.get(post_type, [])
        slug = (params or {}).get("slug")
        return [dict(p) for p in posts if not slug or p.get("slug") == slug]

    def find_posts_by_slug(self, post_type, slug):
        return [dict(p) for p in self.posts.get(post_type, []) if p.get("slug") == slug]

    def fetch_acf(self, post_type, post_id):
        return None

    def get_media(self, media_id):
        for media in self.library:
            if media.get("id") == media_id:
                return media
        return None

    def search_media(self, term):
        return [m for m in self.library if term.lower() in str(m.get("source_url", "")).lower()]

    def search_tags(self, term):
        return [t for t in self.tags if t["name"].lower() == term.lower()]

    def get_tag(self, tag_id):
        for tag in self.tags:
            if tag["id"] == tag_id:
                return tag
        return None

    def download_remote_file(self, url):
        self.downloads.append(url)
        if url in self.files:
            return self.files[url]
        return DownloadedFile(url=url, content=b"binary", content_type="image/jpeg")

    # writes
    def create_post(self, post_type, payload):
        self.writes.append(("create_post", post_type, payload))
        post = {
            "id": self._new_id(),
            "slug": payload["slug"],
            "link": f"{self.base_url}/{post_type}/{payload['slug']}/",
        }
        self.posts.setdefault(post_type, []).append(post)
        return post

    def update_post(self, post_type, post_id, payload):
        self.writes.append(("update_post", post_type, post_id, payload))
        return {"id": post_id}

    def delete_post(self, post_type, post_id):
        self.writes.append(("delete_post", post_type, post_id))
        return {"deleted": True}

    def update_acf(self, post_type, post_id, fields):
        self.writes.append(("update_acf", post_type, post_id, fields))
        return {"acf": fields} if self.acf_route else None

    def upload_media(self, content, filename, content_type):
        media = {"id": self._new_id(), "source_url": f"{self.base_url}/wp-content/uploads/{filename}"}
        self.writes.append(("upload_media", filename, content_type))
        self.library.append(media)
        return media

    def create_tag(self, name, slug):
        tag = {"id": self._new_id(), "name": name, "slug": slug}
        self.writes.append(("create_tag", name, slug))
        self.tags.append(tag)
        return tag


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, headers=None, content=b""):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        self.content = content
        self.text = "" if json_data is None else str(json_data)

    def json(self):
        if self._json is None:
            raise ValueError("no json body")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Routes every call to ``handler(method, url, kwargs)`` and records it."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.handler(method, url, kwargs)


@pytest.fixture
def fake_client():
    return FakeWordPressClient


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession

