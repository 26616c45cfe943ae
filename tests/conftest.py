"""
Shared Test Fixtures for the Blog Server

Fixtures cover a controllable clock, a post factory, a Blog wired to a
recording renderer, and environment values for the config singleton.
No test talks to a live MongoDB: loaders are patched or the database is a MagicMock.
"""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tests.helpers import make_post
from utils.blog.cache import Cache
from utils.blog.store import Blog
from utils.blog.types.post import PostMedia
from utils.tools.cache import clear_search_results_cache


# =============================================================================
# Clock and Environment
# =============================================================================

class FakeClock:
    """Callable clock whose time only moves when a test advances it."""

    def __init__(self, start=1_700_000_000.0):
        self.current = float(start)

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def blog_env(monkeypatch):
    """
    Site settings read through Config during rendering and reloads.

    Tests override single keys with monkeypatch.setenv as needed.
    """
    monkeypatch.setenv("FQDN", "example.com")
    monkeypatch.setenv("TITLE", "Test Blog")
    monkeypatch.setenv("POSTS_PER_PAGE", "10")
    monkeypatch.setenv("CACHE_EXPIRE_HTML", "3600")
    monkeypatch.setenv("BOT_BLOCK_SOLUTION", "blue")
    for key in ("INSTAGRAM_URL", "PINTEREST_URL", "CACHED_TAG_1", "CACHED_TAG_2"):
        monkeypatch.delenv(key, raising=False)
    clear_search_results_cache()
    yield


# =============================================================================
# Data Factories
# =============================================================================

@pytest.fixture
def post_factory():
    return make_post


@pytest.fixture
def featured_media():
    return PostMedia(class_="featured", source="https://example.com/gallery/a.jpg", title="A", caption="Caption A")


# =============================================================================
# Blog Fixtures
# =============================================================================

class RecordingRenderer:
    """Renderer stub that records every call and returns a recognisable string."""

    def __init__(self):
        self.calls = []

    def __call__(self, template, context):
        self.calls.append((template, context))
        return f"<html>{template}#{len(self.calls)}</html>"

    def last_context(self):
        return self.calls[-1][1]


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def cache(clock):
    return Cache(clock=clock, html_ttl=3600, html_max_entries=100)


@pytest.fixture
def blog(renderer, cache):
    return Blog(renderer=renderer, cache=cache)


@pytest.fixture
def load_blog():
    """
    Reload posts into a Blog from an in-memory list instead of MongoDB.

    Usage:
        load_blog(blog, [make_post(1), make_post(2)], snippets=[...])
    """

    def _load(target_blog, posts, snippets=None):
        with patch("utils.blog.store.load_posts", return_value=list(posts)), \
                patch("utils.blog.store.load_snippets", return_value=list(snippets or [])):
            return target_blog.reload_posts(MagicMock())

    return _load


@pytest.fixture
def mock_db():
    """
    MagicMock database whose insert_many reports one inserted id per document.
    """
    db = MagicMock()
    db.post_views.insert_many.side_effect = lambda docs, ordered=True: MagicMock(inserted_ids=list(range(len(docs))))
    return db
