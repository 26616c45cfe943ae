"""
Tests for the Blog content store

Loaders are patched so reloads run against in-memory post lists.
"""

import threading
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import PyMongoError

from tests.helpers import make_post
from utils.blog.errors import ContentLoadError, RenderError
from utils.blog.store import Blog, get_pagination_slice
from utils.blog.types.comment import Comment
from utils.blog.types.menu import Menu, MenuItem
from utils.blog.types.redirect import Redirect
from utils.blog.types.snippet import Snippet, SnippetVariable
from utils.blog.types.tag import Tag


class TestSeoUrlLookup:
    """Tests for canonical and historic URL resolution."""

    def test_canonical_url_resolves(self, blog, load_blog):
        load_blog(blog, [make_post(1, "hello-world")])

        assert blog.get_post_by_seo_url("hello-world") == 1

    def test_lookup_is_case_insensitive(self, blog, load_blog):
        load_blog(blog, [make_post(1, "Hello-World")])

        assert blog.get_post_by_seo_url("HELLO-world") == 1

    def test_historic_url_resolves(self, blog, load_blog):
        load_blog(blog, [make_post(2, "b", url_historic=["b-old"])])

        assert blog.get_post_by_seo_url("b-old") == 2
        assert blog.get_post_by_seo_url("B-OLD") == 2

    def test_canonical_url_wins_over_historic(self, blog, load_blog):
        """A URL that is one post's canonical address and another's old address belongs to the first."""
        posts = [
            make_post(2, "b", url_historic=["a"]),
            make_post(1, "a"),
        ]
        load_blog(blog, posts)

        assert blog.get_post_by_seo_url("a") == 1

    def test_old_url_of_one_post_next_to_other_canonical(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a", url_historic=["b-old"]), make_post(2, "b")])

        assert blog.get_post_by_seo_url("b-old") == 1
        assert blog.get_post_by_seo_url("b") == 2
        assert blog.get_post_by_seo_url("a") == 1

    def test_unknown_url_returns_zero(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])

        assert blog.get_post_by_seo_url("missing") == 0


class TestReloadPosts:
    """Tests for reload_posts and the derived indexes."""

    def test_reload_returns_count(self, blog, load_blog):
        assert load_blog(blog, [make_post(1), make_post(2)]) == 2

    def test_excerpt_is_built(self, blog, load_blog, featured_media):
        load_blog(blog, [make_post(1, media=[featured_media])])

        excerpt = blog.get_post_excerpts([1])[0]

        assert excerpt.content == "<p>Intro 1</p>"
        assert excerpt.thumbnail == featured_media.source

    def test_tag_index_keeps_load_order_and_dashes_spaces(self, blog, load_blog):
        posts = [make_post(3, tags=["road trip"]), make_post(2, tags=["road trip", "food"]), make_post(1, tags=["food"])]
        load_blog(blog, posts)

        assert blog.get_tag_post_ids("road-trip") == [3, 2]
        assert blog.get_tag_post_ids("food") == [2, 1]
        assert blog.get_tag_post_ids("missing") is None
        assert sorted(blog.get_all_in_use_tags()) == ["food", "road-trip"]

    def test_snippets_are_applied(self, blog, load_blog):
        snippet = Snippet(id=1, name="yt", replacement='<iframe src="{id}"></iframe>', variables=[SnippetVariable("id", "none")])
        load_blog(blog, [make_post(1, content='<p>[yt id="abc"]</p>')], snippets=[snippet])

        assert blog.get_post(1).content == '<p><iframe src="abc"></iframe></p>'

    def test_failed_reload_keeps_previous_generation(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])

        with patch("utils.blog.store.load_posts", side_effect=ContentLoadError("posts", "down")):
            with pytest.raises(ContentLoadError):
                blog.reload_posts(MagicMock())

        assert blog.get_post_by_seo_url("a") == 1
        assert blog.get_post(1) is not None

    def test_reload_replaces_previous_generation(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])
        load_blog(blog, [make_post(2, "b")])

        assert blog.get_post_by_seo_url("a") == 0
        assert blog.get_post(1) is None
        assert blog.get_post_by_seo_url("b") == 2

    def test_snippet_load_failure_does_not_block_posts(self, blog):
        with patch("utils.blog.store.load_posts", return_value=[make_post(1, content="[yt]")]), \
                patch("utils.blog.store.load_snippets", side_effect=ContentLoadError("snippets", "down")):
            assert blog.reload_posts(MagicMock()) == 1

        assert blog.get_post(1).content == "[yt]"

    def test_get_post_returns_copy(self, blog, load_blog):
        load_blog(blog, [make_post(1)])

        post = blog.get_post(1)
        post.title = "changed"

        assert blog.get_post(1).title == "Post 1"

    def test_sitemap_is_cached(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])

        sitemap = blog.cache.get_site_map()

        assert sitemap.content[0].loc == "https://example.com/a"

    def test_readers_never_see_a_mixed_generation(self, blog, load_blog):
        """While generations swap, every lookup resolves inside one complete generation."""
        first = [make_post(i, f"p-{i}") for i in range(1, 41)]
        second = [make_post(i, f"p-{i}", title=f"Second {i}") for i in range(1, 41)]
        load_blog(blog, first)

        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                excerpts = blog.get_post_excerpts(range(1, 41))
                titles = {e.title.split()[0] for e in excerpts}
                if len(excerpts) != 40 or len(titles) != 1:
                    errors.append((len(excerpts), titles))
                if blog.get_post_by_seo_url("p-7") != 7:
                    errors.append("lookup")

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for i in range(30):
            load_blog(blog, second if i % 2 == 0 else first)
        stop.set()
        for t in threads:
            t.join()

        assert errors == []

    def test_swap_waits_for_reader_of_any_post_table(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])
        reload_thread = threading.Thread(target=load_blog, args=(blog, [make_post(2, "b")]))

        with blog._seo_urls_historic_lock.read():
            reload_thread.start()
            reload_thread.join(timeout=0.2)
            assert reload_thread.is_alive()

        reload_thread.join(timeout=5)
        assert not reload_thread.is_alive()
        assert blog.get_post_by_seo_url("b") == 2


class TestOtherContent:
    """Tests for tags, menus, redirects and comments."""

    def test_reload_tags(self, blog):
        with patch("utils.blog.store.load_tags", return_value=[Tag(id="travel", title="Travel")]):
            assert blog.reload_tags(MagicMock()) == 1

        assert blog.get_tag("travel").title == "Travel"
        assert blog.get_tag("food") is None

    def test_reload_menus(self, blog):
        menu = Menu(id=1, name="main", items=[MenuItem(title="Home", url="/")])
        with patch("utils.blog.store.load_menus", return_value=[menu]):
            blog.reload_menus(MagicMock())

        assert blog.get_menu("main")[0].title == "Home"
        assert blog.get_menu("footer") is None

    def test_lookup_redirect(self, blog):
        with patch("utils.blog.store.load_redirects", return_value=[Redirect(id=1, name="shop", target="https://shop.example.com")]):
            blog.reload_redirects(MagicMock())

        assert blog.lookup_redirect("shop") == "https://shop.example.com"
        assert blog.lookup_redirect("unknown") == "https://example.com"

    def test_reload_comments_groups_by_post(self, blog):
        comments = [
            Comment(id=1, post_id=5, status="approved", content="a"),
            Comment(id=2, post_id=6, status="approved", content="b"),
            Comment(id=3, post_id=5, status="approved", content="c"),
        ]
        with patch("utils.blog.store.load_comments", return_value=comments):
            assert blog.reload_comments(MagicMock()) == 3

        assert [c.id for c in blog.get_post_comments(5)] == [1, 3]
        assert blog.get_post_comments(7) is None

    def test_startup_tolerates_secondary_failures(self, blog):
        with patch("utils.blog.store.load_posts", return_value=[make_post(1)]), \
                patch("utils.blog.store.load_snippets", return_value=[]), \
                patch("utils.blog.store.load_menus", side_effect=ContentLoadError("menus", "down")), \
                patch("utils.blog.store.load_redirects", return_value=[]), \
                patch("utils.blog.store.load_tags", return_value=[]), \
                patch("utils.blog.store.load_comments", return_value=[]), \
                patch.object(blog, "refresh_cached_content") as refresh:
            assert blog.startup(MagicMock()) == 1

        refresh.assert_called_once()
        assert blog.get_menu("main") is None

    def test_startup_fails_when_posts_fail(self, blog):
        with patch("utils.blog.store.load_posts", side_effect=ContentLoadError("posts", "down")):
            with pytest.raises(ContentLoadError):
                blog.startup(None)


class TestPagination:
    """Tests for get_pagination_slice."""

    def test_pages_of_twenty_five(self):
        ids = list(range(1, 26))

        assert get_pagination_slice(ids, 0, 10) == list(range(1, 11))
        assert get_pagination_slice(ids, 2, 10) == [21, 22, 23, 24, 25]
        assert get_pagination_slice(ids, 3, 10) == []

    def test_negative_page_is_empty(self):
        assert get_pagination_slice([1, 2, 3], -1, 10) == []

    def test_tag_excerpts_are_limited(self, blog, load_blog):
        load_blog(blog, [make_post(i, tags=["t"]) for i in range(20, 0, -1)])

        excerpts = blog.get_post_excerpts_by_tag("t", 8)

        assert [e.id for e in excerpts] == list(range(20, 12, -1))
        assert blog.get_post_excerpts_by_tag("none", 8) == []


class TestPages:
    """Tests for the page builders and the HTML cache."""

    def test_post_page_is_rendered_once(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(1, "a")])

        first = blog.get_html_post("a", "1.2.3.4", "ua", "ref")
        second = blog.get_html_post("A", "1.2.3.4", "ua", "ref")

        assert first == second
        assert len(renderer.calls) == 1
        assert renderer.calls[0][0] == "post.html"

    def test_post_page_records_view_on_every_hit(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])

        blog.get_html_post("a", "1.2.3.4", "ua", "ref")
        blog.get_html_post("a", "5.6.7.8", "ua", "")

        events = blog.views.drain()
        assert [e.post_id for e in events] == [1, 1]
        assert events[1].remote_ip == "5.6.7.8"

    def test_historic_url_renders_same_post(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(2, "b", url_historic=["b-old"])])

        blog.get_html_post("b-old")

        context = renderer.last_context()
        assert context["post"]["id"] == 2
        assert context["canonical"] == "https://example.com/b"

    def test_unknown_post_returns_none_without_view(self, blog, load_blog):
        load_blog(blog, [make_post(1, "a")])

        assert blog.get_html_post("missing") is None
        assert len(blog.views) == 0

    def test_post_context_includes_related_and_comments(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(2, "b"), make_post(1, "a", related_posts=[2, 99])])
        with patch("utils.blog.store.load_comments", return_value=[Comment(id=1, post_id=1, status="approved", content="hi")]):
            blog.reload_comments(MagicMock())

        blog.get_html_post("a")

        context = renderer.last_context()
        assert [e["id"] for e in context["post_related"]] == [2]
        assert context["post_comments"][0]["content"] == "hi"

    def test_invalidate_html_forces_rerender(self, blog, load_blog, renderer, clock):
        load_blog(blog, [make_post(1, "a")])
        blog.get_html_post("a")

        clock.advance(1)
        assert blog.invalidate_html_cache() == 1
        blog.get_html_post("a")

        assert len(renderer.calls) == 2

    def test_tag_page_context(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(i, tags=["t"]) for i in range(25, 0, -1)])
        with patch("utils.blog.store.load_tags", return_value=[Tag(id="t", title="Tee", meta_title="Tag meta")]):
            blog.reload_tags(MagicMock())

        blog.get_html_tag("t", 2)

        template, context = renderer.calls[-1]
        assert template == "post_list.html"
        assert context["page_current"] == 2
        assert context["page_total"] == 3
        assert [e["id"] for e in context["post_list"]] == [5, 4, 3, 2, 1]
        assert context["canonical"] == "https://example.com/tag/t?p=3"
        assert context["meta_title"] == "Tag meta"

    def test_tag_page_is_cached_per_page(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(1, tags=["t"])])

        blog.get_html_tag("t", 0)
        blog.get_html_tag("t", 0)
        blog.get_html_tag("t", 1)

        assert len(renderer.calls) == 2

    def test_unknown_tag_renders_empty_list(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(1, tags=["t"])])

        blog.get_html_tag("nothing", 0)

        context = renderer.last_context()
        assert context["post_list"] is None
        assert context["tag"] is None

    def test_base_page_uses_cached_content(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(1)])
        blog.cache.cache_latest_posts(blog.get_post_excerpts([1]))

        blog.get_html_base("index.html")
        blog.get_html_base("index.html")

        assert len(renderer.calls) == 1
        assert renderer.last_context()["latest_posts"][0]["id"] == 1

    def test_search_is_never_html_cached(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(2), make_post(1)])
        db = MagicMock()

        with patch("utils.tools.cache.fetch_posts_by_search_string", return_value=[2, 1]) as fetch:
            blog.get_html_search(db, "trip", 0)
            blog.get_html_search(db, "trip", 0)

        assert len(renderer.calls) == 2
        fetch.assert_called_once()
        context = renderer.last_context()
        assert [e["id"] for e in context["post_list"]] == [2, 1]
        assert context["search_string"] == "trip"
        assert context["canonical"] == "https://example.com/search?q=trip"

    def test_search_database_error_renders_empty_result(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(1)])

        with patch("utils.tools.cache.fetch_posts_by_search_string", side_effect=PyMongoError("down")):
            blog.get_html_search(MagicMock(), "x", 0)

        assert renderer.last_context()["post_list"] == []

    def test_render_failure_raises_render_error(self, load_blog, cache):
        failing = Blog(renderer=MagicMock(side_effect=ValueError("bad template")), cache=cache)
        load_blog(failing, [make_post(1, "a")])

        with pytest.raises(RenderError):
            failing.get_html_post("a")

    def test_sitemap_and_feed_are_cached(self, blog, load_blog, renderer):
        load_blog(blog, [make_post(1, "a")])

        blog.get_html_site_map()
        blog.get_html_site_map()
        blog.get_html_rss_feed()
        blog.get_html_rss_feed()

        assert [c[0] for c in renderer.calls] == ["sitemap.xml", "feed.rss"]
        assert renderer.calls[0][1]["content"][0]["loc"] == "https://example.com/a"
