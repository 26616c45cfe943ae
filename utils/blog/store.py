"""
博客内存数据存储

启动时从 MongoDB 一次性加载文章、标签、菜单、转发和评论，之后所有页面请求都只读内存。
每种内容都在锁外构建好新的字典，再在写锁内整体替换，读者只会看到完整的旧版本或完整的新版本。

文章相关的四张表（文章、摘要、规范URL、历史URL）只在 reload_posts 中一起加写锁，
需要同时读多张表时按同样的顺序加读锁：posts -> excerpts -> seo_urls -> seo_urls_historic。
"""
from contextlib import ExitStack
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import asdict
import logging
import math
import time
from typing import Callable, Dict, List, Optional
from urllib.parse import quote_plus

from pymongo.errors import PyMongoError

from utils.blog.cache import CACHED_TAG_SLOTS
from utils.blog.cache import Cache
from utils.blog.cache import KEY_FEATURED
from utils.blog.cache import KEY_INSTAGRAM
from utils.blog.cache import KEY_LATEST
from utils.blog.cache import KEY_PINTEREST
from utils.blog.cache import KIND_EXCERPTS
from utils.blog.cache import KIND_FEED
from utils.blog.cache import tag_cache_key
from utils.blog.context import Context
from utils.blog.errors import ContentLoadError
from utils.blog.errors import RenderError
from utils.blog.sitemap import SiteMap
from utils.blog.sitemap import build_sitemap
from utils.blog.types.comment import Comment
from utils.blog.types.comment import load_comments
from utils.blog.types.menu import load_menus
from utils.blog.types.post import Post
from utils.blog.types.post import PostExcerpt
from utils.blog.types.post import fetch_latest_posts
from utils.blog.types.post import fetch_most_viewed_posts
from utils.blog.types.post import group_ids_by_tag
from utils.blog.types.post import load_posts
from utils.blog.types.post import log_post_views
from utils.blog.types.redirect import load_redirects
from utils.blog.types.snippet import apply_snippets
from utils.blog.types.snippet import load_snippets
from utils.blog.types.tag import Tag
from utils.blog.types.tag import load_tags
from utils.blog.views_buffer import ViewEvent
from utils.blog.views_buffer import ViewEventBuffer
from utils.core.config import Config
from utils.core.config import config_get_string
from utils.core.rwlock import RWLock
from utils.tools.cache import clear_search_results_cache
from utils.tools.cache import search_post_ids
from utils.tools.feeds import fetch_instagram_feed
from utils.tools.feeds import fetch_pinterest_feed

DEFAULT_POSTS_PER_PAGE = 10
CACHED_EXCERPT_LIMIT = 8

Renderer = Callable[[str, dict], str]


def get_pagination_slice(source: List[int], page: int, per_page: int) -> List[int]:
    """取第 page 页（从0开始）的ID，越界时返回空列表"""
    if page < 0 or per_page <= 0:
        return []
    offset = page * per_page
    return list(source[offset:offset + per_page])


def posts_per_page() -> int:
    return Config().get_positive_int("posts_per_page", DEFAULT_POSTS_PER_PAGE)


class Blog:
    """博客内容存储，每个工作进程一个实例"""

    def __init__(self, renderer: Optional[Renderer] = None, cache: Optional[Cache] = None, clock: Callable[[], float] = time.time):
        self._render = renderer
        self.cache = cache if cache is not None else Cache(clock=clock)
        self.views = ViewEventBuffer()

        self._posts: Dict[int, Post] = {}
        self._posts_lock = RWLock()
        self._excerpts: Dict[int, PostExcerpt] = {}
        self._excerpts_lock = RWLock()
        self._seo_urls: Dict[str, int] = {}
        self._seo_urls_lock = RWLock()
        self._seo_urls_historic: Dict[str, int] = {}
        self._seo_urls_historic_lock = RWLock()

        self._tag_posts: Dict[str, List[int]] = {}
        self._tag_posts_lock = RWLock()
        self._tags: Dict[str, Tag] = {}
        self._tags_lock = RWLock()
        self._comments: Dict[int, List[Comment]] = {}
        self._comments_lock = RWLock()
        self._menus: Dict[str, list] = {}
        self._menus_lock = RWLock()
        self._redirects: Dict[str, str] = {}
        self._redirects_lock = RWLock()

    def now(self) -> int:
        return int(self.cache.now())

    @contextmanager
    def _write_post_tables(self):
        locks = (self._posts_lock, self._excerpts_lock, self._seo_urls_lock, self._seo_urls_historic_lock)
        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock.write())
            yield

    # ------------------------------------------------------------------
    # 加载
    # ------------------------------------------------------------------

    def startup(self, db) -> int:
        """
        启动加载。文章加载失败直接抛出（进程不应在没有文章的情况下开始服务），
        其余内容加载失败只记录日志，对应内容保持为空。
        """
        post_count = self.reload_posts(db)

        counts = {}
        for kind, reload in (("menus", self.reload_menus), ("redirects", self.reload_redirects), ("tags", self.reload_tags),
                             ("comments", self.reload_comments)):
            try:
                counts[kind] = reload(db)
            except ContentLoadError as e:
                logging.error(f"启动时{e}，该类内容暂时为空")
                counts[kind] = 0

        logging.info(f"启动加载完成: {post_count} 篇文章, {counts['tags']} 个标签, {counts['comments']} 条评论, "
                     f"{counts['menus']} 个菜单, {counts['redirects']} 个转发")

        self.refresh_cached_content(db)
        return post_count

    def reload_posts(self, db) -> int:
        """
        重新加载全部文章，并重建摘要、URL索引、标签索引和站点地图。
        数据库错误抛出 ContentLoadError，此时旧数据继续提供服务。
        """
        posts = load_posts(db)

        try:
            snippets = load_snippets(db)
        except ContentLoadError as e:
            logging.warning(f"{e}，本次文章不做片段替换")
            snippets = []
        snippet_map = {}
        for snippet in snippets:
            snippet_map.setdefault(snippet.name, snippet)

        new_posts = {}
        new_excerpts = {}
        new_seo_urls = {}
        new_seo_urls_historic = {}
        for post in posts:
            post.content = apply_snippets(post.content, snippet_map)
            new_seo_urls[post.url_canonical.lower()] = post.id
            for url in post.url_historic:
                new_seo_urls_historic[url.lower()] = post.id
            new_excerpts[post.id] = post.get_excerpt()
            new_posts[post.id] = post

        tag_index = group_ids_by_tag(posts)
        sitemap = build_sitemap(posts, tag_index, config_get_string("fqdn"), posts_per_page(), self.now())

        with self._write_post_tables():
            self._posts = new_posts
            self._excerpts = new_excerpts
            self._seo_urls = new_seo_urls
            self._seo_urls_historic = new_seo_urls_historic

        with self._tag_posts_lock.write():
            self._tag_posts = tag_index

        self.cache.cache_sitemap(sitemap)
        clear_search_results_cache()

        logging.info(f"已加载 {len(new_posts)} 篇文章，{len(tag_index)} 个在用标签")
        return len(new_posts)

    def reload_tags(self, db) -> int:
        tags = {tag.id: tag for tag in load_tags(db)}
        with self._tags_lock.write():
            self._tags = tags
        logging.info(f"已加载 {len(tags)} 个标签")
        return len(tags)

    def reload_menus(self, db) -> int:
        menus = load_menus(db)
        new_menus = {menu.name: menu.items for menu in menus}
        with self._menus_lock.write():
            self._menus = new_menus
        logging.info(f"已加载 {len(menus)} 个菜单")
        return len(menus)

    def reload_redirects(self, db) -> int:
        redirects = load_redirects(db)
        new_redirects = {r.name: r.target for r in redirects}
        with self._redirects_lock.write():
            self._redirects = new_redirects
        logging.info(f"已加载 {len(redirects)} 个转发")
        return len(redirects)

    def reload_comments(self, db) -> int:
        comments = load_comments(db)
        by_post: Dict[int, List[Comment]] = {}
        for comment in comments:
            by_post.setdefault(comment.post_id, []).append(comment)
        with self._comments_lock.write():
            self._comments = by_post
        logging.info(f"已加载 {len(comments)} 条评论")
        return len(comments)

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    def get_post(self, post_id: int) -> Optional[Post]:
        with self._posts_lock.read():
            post = self._posts.get(post_id)
        return deepcopy(post) if post is not None else None

    def get_post_by_seo_url(self, seo_url: str) -> int:
        """先查规范URL，再查历史URL；找不到返回0"""
        key = seo_url.lower()
        with self._seo_urls_lock.read(), self._seo_urls_historic_lock.read():
            post_id = self._seo_urls.get(key, 0)
            if post_id == 0:
                post_id = self._seo_urls_historic.get(key, 0)
        return post_id

    def get_post_excerpts(self, post_ids) -> List[PostExcerpt]:
        """按输入顺序返回摘要，跳过没有摘要的ID"""
        with self._excerpts_lock.read():
            return [self._excerpts[i] for i in post_ids if i in self._excerpts]

    def get_tag_post_ids(self, tag_id: str) -> Optional[List[int]]:
        with self._tag_posts_lock.read():
            ids = self._tag_posts.get(tag_id)
            return list(ids) if ids is not None else None

    def get_post_excerpts_by_tag(self, tag_id: str, limit: int) -> List[PostExcerpt]:
        ids = self.get_tag_post_ids(tag_id)
        if not ids:
            return []
        return self.get_post_excerpts(get_pagination_slice(ids, 0, limit))

    def get_pagination_slice(self, source: List[int], page: int, per_page: int) -> List[int]:
        return get_pagination_slice(source, page, per_page)

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        with self._tags_lock.read():
            tag = self._tags.get(tag_id)
        return deepcopy(tag) if tag is not None else None

    def get_all_in_use_tags(self) -> List[str]:
        with self._tag_posts_lock.read():
            return list(self._tag_posts.keys())

    def get_menu(self, name: str) -> Optional[list]:
        with self._menus_lock.read():
            items = self._menus.get(name)
        return deepcopy(items) if items is not None else None

    def get_post_comments(self, post_id: int) -> Optional[List[Comment]]:
        with self._comments_lock.read():
            comments = self._comments.get(post_id)
        return deepcopy(comments) if comments is not None else None

    def lookup_redirect(self, name: str) -> str:
        """查找转发目标，未知名称转到站点首页"""
        with self._redirects_lock.read():
            target = self._redirects.get(name)
        return target if target is not None else f"https://{config_get_string('fqdn')}"

    # ------------------------------------------------------------------
    # 页面
    # ------------------------------------------------------------------

    def _base_context(self) -> Context:
        return Context.base(self.now(), main_menu=self.get_menu("main"))

    def _render_template(self, template: str, context: dict) -> str:
        if self._render is None:
            raise RenderError(template, "没有配置模板渲染器")
        try:
            return self._render(template, context)
        except Exception as e:
            logging.error(f"渲染模板 {template} 失败: {e}", exc_info=True)
            raise RenderError(template, str(e)) from e

    def get_html_base(self, template: str) -> str:
        """首页等只依赖站点信息和缓存内容的页面"""
        cache_key = f"base_{template}"
        html = self.cache.get_html(cache_key)
        if html is not None:
            return html

        context = self._base_context()
        context.instagram_posts = self.cache.get_instagram_posts()
        context.pinterest_posts = self.cache.get_pinterest_posts()
        context.latest_posts = self.cache.get_latest_posts()
        context.featured_posts = self.cache.get_featured_posts()
        for slot in range(1, CACHED_TAG_SLOTS + 1):
            setattr(context, f"excerpts_tag_{slot}", self.cache.get_posts_by_tag(slot))

        html = self._render_template(template, context.to_dict())
        self.cache.cache_html(cache_key, html)
        return html

    def get_html_post(self, url: str, remote_ip: str = "", user_agent: str = "", referer: str = "") -> Optional[str]:
        """
        文章页。URL 对应不到文章时返回 None；
        对应到文章时无论是否命中缓存都记录一次浏览。
        """
        post_id = self.get_post_by_seo_url(url)
        if post_id == 0:
            return None

        cache_key = f"post_{post_id}"
        html = self.cache.get_html(cache_key)
        if html is not None:
            self.record_view(post_id, remote_ip, user_agent, referer)
            return html

        post = self.get_post(post_id)
        if post is None:
            return None

        context = self._base_context()
        self.record_view(post.id, remote_ip, user_agent, referer, viewed_at=context.time)

        context.post = post
        context.canonical = f"https://{config_get_string('fqdn')}/{post.url_canonical}"
        context.meta_title = post.meta_title
        context.meta_description = post.meta_description
        if post.related_posts:
            context.post_related = self.get_post_excerpts(post.related_posts)
        context.post_comments = self.get_post_comments(post.id)

        html = self._render_template("post.html", context.to_dict())
        self.cache.cache_html(cache_key, html)
        return html

    def get_html_tag(self, tag_id: str, page: int) -> str:
        """标签列表页，page 从0开始"""
        cache_key = f"tag_{tag_id}_{page}"
        html = self.cache.get_html(cache_key)
        if html is not None:
            return html

        context = self._base_context()
        ids = self.get_tag_post_ids(tag_id)
        if ids is not None:
            per_page = posts_per_page()
            context.page_current = page
            context.page_total = math.ceil(len(ids) / per_page)
            context.post_list = self.get_post_excerpts(get_pagination_slice(ids, page, per_page))

        context.tag = self.get_tag(tag_id)
        context.tag_id = tag_id
        page_param = f"?p={page + 1}" if page > 0 else ""
        context.canonical = f"https://{config_get_string('fqdn')}/tag/{tag_id}{page_param}"
        if context.tag is not None:
            if context.tag.meta_title:
                context.meta_title = context.tag.meta_title
            if context.tag.meta_description:
                context.meta_description = context.tag.meta_description

        html = self._render_template("post_list.html", context.to_dict())
        self.cache.cache_html(cache_key, html)
        return html

    def get_html_search(self, db, search_string: str, page: int) -> str:
        """搜索结果页，不缓存 HTML；命中的ID列表由搜索缓存短暂保留"""
        context = self._base_context()

        ids = []
        if db is None:
            logging.error("搜索时数据库不可用")
        else:
            try:
                ids = list(search_post_ids(db, search_string))
            except PyMongoError as e:
                logging.error(f"搜索 {search_string!r} 失败: {e}")

        per_page = posts_per_page()
        context.page_current = page
        context.page_total = math.ceil(len(ids) / per_page)
        context.post_list = self.get_post_excerpts(get_pagination_slice(ids, page, per_page))
        context.search_string = search_string
        page_param = f"&p={page + 1}" if page > 0 else ""
        context.canonical = f"https://{config_get_string('fqdn')}/search?q={quote_plus(search_string)}{page_param}"

        return self._render_template("post_list.html", context.to_dict())

    def get_html_site_map(self) -> str:
        cache_key = "site_map"
        html = self.cache.get_html(cache_key)
        if html is not None:
            return html

        sitemap = self.cache.get_site_map() or SiteMap()
        html = self._render_template("sitemap.xml", asdict(sitemap))
        self.cache.cache_html(cache_key, html)
        return html

    def get_html_rss_feed(self) -> str:
        cache_key = "rss_feed"
        html = self.cache.get_html(cache_key)
        if html is not None:
            return html

        context = self._base_context()
        context.latest_posts = self.cache.get_latest_posts()

        html = self._render_template("feed.rss", context.to_dict())
        self.cache.cache_html(cache_key, html)
        return html

    # ------------------------------------------------------------------
    # 浏览记录与维护
    # ------------------------------------------------------------------

    def record_view(self, post_id: int, remote_ip: str, user_agent: str, referer: str, viewed_at: Optional[int] = None):
        """追加一条浏览事件，不做任何 I/O"""
        if viewed_at is None:
            viewed_at = self.now()
        self.views.append(ViewEvent(post_id=post_id, viewed_at=viewed_at, remote_ip=remote_ip or "", user_agent=user_agent or "",
                                    referer=referer or ""))

    def _latest_excerpts(self, db):
        if db is None:
            logging.warning("数据库不可用，跳过最新文章缓存刷新")
            return None
        return self.get_post_excerpts(fetch_latest_posts(db, CACHED_EXCERPT_LIMIT)) or None

    def _featured_excerpts(self, db):
        if db is None:
            logging.warning("数据库不可用，跳过热门文章缓存刷新")
            return None
        return self.get_post_excerpts(fetch_most_viewed_posts(db, CACHED_EXCERPT_LIMIT)) or None

    def refresh_cached_content(self, db):
        """
        刷新已过期的辅助缓存：社交订阅、最新文章、热门文章、配置的标签文章。
        每一项独立刷新，某一项失败不影响其他项。摘要列表为空时不写入。
        """
        config = Config()
        self.cache.refresh_if_expired(KEY_PINTEREST, config.get_int("pinterest_lifetime"), fetch_pinterest_feed, kind=KIND_FEED)
        self.cache.refresh_if_expired(KEY_INSTAGRAM, config.get_int("instagram_lifetime"), fetch_instagram_feed, kind=KIND_FEED)
        self.cache.refresh_if_expired(KEY_LATEST, config.get_int("latest_posts_lifetime"), lambda: self._latest_excerpts(db),
                                      kind=KIND_EXCERPTS)
        self.cache.refresh_if_expired(KEY_FEATURED, config.get_int("featured_posts_lifetime"), lambda: self._featured_excerpts(db),
                                      kind=KIND_EXCERPTS)

        tag_ttl = config.get_int("cached_tag_lifetime")
        for slot in range(1, CACHED_TAG_SLOTS + 1):
            tag_id = config.get_string(f"cached_tag_{slot}")
            if not tag_id:
                continue
            self.cache.refresh_if_expired(tag_cache_key(slot), tag_ttl,
                                          lambda tag_id=tag_id: self.get_post_excerpts_by_tag(tag_id, CACHED_EXCERPT_LIMIT) or None,
                                          kind=KIND_EXCERPTS)

    def flush_views(self, db) -> int:
        """取走缓冲区中的浏览事件并批量写库（写库在缓冲区锁之外进行），返回写入条数"""
        events = self.views.drain()
        if not events:
            return 0
        if db is None:
            logging.error(f"数据库不可用，丢弃 {len(events)} 条浏览记录")
            return 0
        try:
            written = log_post_views(db, events)
        except PyMongoError as e:
            logging.error(f"写入 {len(events)} 条浏览记录失败: {e}")
            return 0
        logging.debug(f"已写入 {written} 条浏览记录")
        return written

    def run_maintenance(self, db) -> int:
        """一个维护周期：先刷新缓存，再写入浏览记录"""
        self.refresh_cached_content(db)
        return self.flush_views(db)

    def invalidate_html_cache(self) -> int:
        self.cache.invalidate_html()
        return 1
