"""
Tests for the in-process Cache

Covers auxiliary entries (copy-on-read, expiry, refresh with fallback to
stale data) and HTML fragments (TTL, watermark invalidation, capacity).
"""

from unittest.mock import MagicMock

from utils.blog.cache import Cache, KEY_LATEST


class TestAuxiliaryEntries:
    """Tests for put/get and expiry of auxiliary entries."""

    def test_get_missing_key_returns_none(self, cache):
        assert cache.get("nothing") is None

    def test_get_returns_copy(self, cache):
        """Mutating a returned payload must not change the cached value."""
        cache.put("list", [1, 2, 3])

        first = cache.get("list")
        first.append(4)

        assert cache.get("list") == [1, 2, 3]

    def test_put_copies_payload(self, cache):
        payload = {"a": [1]}
        cache.put("dict", payload)
        payload["a"].append(2)

        assert cache.get("dict") == {"a": [1]}

    def test_entry_without_ttl_never_expires(self, cache, clock):
        cache.put("forever", "x")
        clock.advance(10 ** 9)

        assert cache.not_yet_expired("forever") is True

    def test_expiry_boundary(self, cache, clock):
        """An entry is still fresh at exactly its decay time."""
        cache.put("k", "v", ttl=60)

        clock.advance(60)
        assert cache.not_yet_expired("k") is True

        clock.advance(1)
        assert cache.not_yet_expired("k") is False

    def test_expired_entry_is_still_returned(self, cache, clock):
        cache.put("k", "stale", ttl=1)
        clock.advance(100)

        assert cache.get("k") == "stale"

    def test_missing_entry_is_expired(self, cache):
        assert cache.not_yet_expired("missing") is False


class TestRefreshIfExpired:
    """Tests for refresh_if_expired."""

    def test_fresh_entry_is_not_refetched(self, cache):
        cache.put(KEY_LATEST, ["old"], ttl=100)
        fetch = MagicMock(return_value=["new"])

        assert cache.refresh_if_expired(KEY_LATEST, 100, fetch) is False
        fetch.assert_not_called()
        assert cache.get(KEY_LATEST) == ["old"]

    def test_missing_entry_is_fetched(self, cache, clock):
        assert cache.refresh_if_expired(KEY_LATEST, 100, lambda: ["new"]) is True
        assert cache.get(KEY_LATEST) == ["new"]

        clock.advance(100)
        assert cache.not_yet_expired(KEY_LATEST) is True

    def test_none_keeps_stale_value(self, cache, clock):
        cache.put(KEY_LATEST, ["old"], ttl=10)
        clock.advance(11)

        assert cache.refresh_if_expired(KEY_LATEST, 100, lambda: None) is False
        assert cache.get(KEY_LATEST) == ["old"]
        assert cache.not_yet_expired(KEY_LATEST) is False

    def test_exception_keeps_stale_value(self, cache, clock):
        cache.put(KEY_LATEST, ["old"], ttl=10)
        clock.advance(11)

        fetch = MagicMock(side_effect=RuntimeError("feed down"))

        assert cache.refresh_if_expired(KEY_LATEST, 100, fetch) is False
        assert cache.get(KEY_LATEST) == ["old"]

    def test_failed_refresh_is_retried_next_time(self, cache, clock):
        cache.put(KEY_LATEST, ["old"], ttl=10)
        clock.advance(11)
        cache.refresh_if_expired(KEY_LATEST, 100, lambda: None)

        assert cache.refresh_if_expired(KEY_LATEST, 100, lambda: ["new"]) is True
        assert cache.get(KEY_LATEST) == ["new"]

    def test_tag_slot_accessor(self, cache):
        cache.cache_posts_by_tag(3, ["tagged"])

        assert cache.get_posts_by_tag(3) == ["tagged"]
        assert cache.get_posts_by_tag(4) is None


class TestHtmlFragments:
    """Tests for cache_html/get_html and invalidation."""

    def test_cached_fragment_is_returned(self, cache):
        cache.cache_html("post_1", "<p>1</p>")

        assert cache.get_html("post_1") == "<p>1</p>"

    def test_fragment_expires_after_ttl(self, cache, clock):
        cache.cache_html("post_1", "<p>1</p>")

        clock.advance(3600)
        assert cache.get_html("post_1") == "<p>1</p>"

        clock.advance(1)
        assert cache.get_html("post_1") is None

    def test_html_namespace_is_separate_from_aux_entries(self, cache):
        cache.put("post_1", "aux")
        cache.cache_html("post_1", "html")

        assert cache.get("post_1") == "aux"
        assert cache.get_html("post_1") == "html"

    def test_invalidate_hides_older_fragments(self, cache, clock):
        cache.cache_html("a", "A")
        clock.advance(5)
        cache.invalidate_html()

        assert cache.get_html("a") is None

    def test_fragment_cached_after_invalidation_is_visible(self, cache, clock):
        cache.invalidate_html()
        clock.advance(1)
        cache.cache_html("a", "A")

        assert cache.get_html("a") == "A"

    def test_render_spanning_invalidation_is_kept_until_ttl(self, cache, clock):
        """cached_at is the store time, so a render started before invalidate_html() is kept."""
        html = "<p>rendered from old data</p>"
        cache.invalidate_html()
        clock.advance(1)
        cache.cache_html("post_1", html)

        clock.advance(3600)
        assert cache.get_html("post_1") == html
        clock.advance(1)
        assert cache.get_html("post_1") is None

    def test_fragment_cached_in_same_second_as_invalidation_survives(self, cache):
        """cached_at equal to the watermark is not older than it."""
        cache.invalidate_html()
        cache.cache_html("a", "A")

        assert cache.get_html("a") == "A"

    def test_capacity_evicts_least_recently_used(self, clock):
        small = Cache(clock=clock, html_ttl=3600, html_max_entries=2)
        small.cache_html("a", "A")
        small.cache_html("b", "B")
        small.get_html("a")
        small.cache_html("c", "C")

        assert small.get_html("a") == "A"
        assert small.get_html("b") is None
        assert small.get_html("c") == "C"

    def test_zero_ttl_fragment_lives_for_current_second_only(self, clock):
        no_ttl = Cache(clock=clock, html_ttl=0, html_max_entries=10)
        no_ttl.cache_html("a", "A")

        assert no_ttl.get_html("a") == "A"
        clock.advance(1)
        assert no_ttl.get_html("a") is None
