"""
进程内缓存

两类条目分开存放：
- 辅助条目（社交订阅、文章摘要列表、站点地图）：固定的一组键，放在由读写锁保护的字典里，各自有独立的过期时间；
- HTML 片段：数量随访问的页面增长，放在有容量上限的 LRUCache 里，由一把互斥锁保护（LRU 读取也会修改顺序）。

HTML 整体失效通过水位时间实现：创建时间早于水位的片段一律视为不存在，不需要逐个删除。
所有读取返回副本，调用方拿不到缓存内部对象的引用。
"""
from copy import deepcopy
from dataclasses import dataclass
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from cachetools import LRUCache

from utils.core.config import Config
from utils.core.rwlock import RWLock

KIND_FEED = "feed"
KIND_EXCERPTS = "excerpts"
KIND_SITEMAP = "sitemap"
KIND_HTML = "html"

KEY_PINTEREST = "pinterest_posts"
KEY_INSTAGRAM = "instagram_posts"
KEY_LATEST = "latest_posts"
KEY_FEATURED = "featured_posts"
KEY_SITEMAP = "sitemap"
CACHED_TAG_SLOTS = 5

DEFAULT_HTML_MAX_ENTRIES = 10000


def tag_cache_key(slot: int) -> str:
    return f"post_by_tag_{slot}"


@dataclass
class CacheItem:
    kind: str
    data: Any
    decay_time: Optional[float] = None  # None: 不过期
    cached_at: Optional[float] = None


class Cache:
    """博客缓存，时钟可注入以便测试"""

    def __init__(self, clock: Callable[[], float] = time.time, html_ttl: Optional[int] = None, html_max_entries: Optional[int] = None):
        self._clock = clock
        self._lock = RWLock()
        self._entries: Dict[str, CacheItem] = {}

        if html_ttl is None:
            html_ttl = Config().get_int("cache_expire_html")
        if html_max_entries is None:
            html_max_entries = Config().get_positive_int("cache_html_max_entries", DEFAULT_HTML_MAX_ENTRIES)
        self._html_ttl = html_ttl
        self._html_lock = threading.Lock()
        self._html: LRUCache = LRUCache(maxsize=html_max_entries)

        # 单个浮点数的读写在 CPython 中是原子的，读取时不加锁
        self._html_min_time = 0.0

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # 通用读写
    # ------------------------------------------------------------------

    def put(self, key: str, payload: Any, ttl: Optional[int] = None, kind: str = KIND_FEED):
        """写入或覆盖条目，ttl 为 None 时永不过期"""
        decay_time = None if ttl is None else self.now() + ttl
        item = CacheItem(kind=kind, data=deepcopy(payload), decay_time=decay_time)
        with self._lock.write():
            self._entries[key] = item

    def get(self, key: str) -> Optional[Any]:
        """返回条目数据的副本，不存在时返回 None（过期的条目仍会返回，由维护任务负责刷新）"""
        with self._lock.read():
            item = self._entries.get(key)
            if item is None:
                return None
            return deepcopy(item.data)

    def not_yet_expired(self, key: str, now: Optional[float] = None) -> bool:
        if now is None:
            now = self.now()
        with self._lock.read():
            item = self._entries.get(key)
        if item is None:
            return False
        return item.decay_time is None or now <= item.decay_time

    def refresh_if_expired(self, key: str, ttl: int, fetch_fn: Callable[[], Any], kind: str = KIND_FEED) -> bool:
        """
        条目不存在或已过期时调用 fetch_fn 获取新值并写入，过期时间为 now + ttl。

        fetch_fn 在锁外执行；返回 None 或抛出异常视为失败，此时旧值与过期时间保持不变，
        下一个维护周期再重试。返回是否写入了新值。
        """
        now = self.now()
        if self.not_yet_expired(key, now):
            return False

        try:
            payload = fetch_fn()
        except Exception as e:
            logging.warning(f"刷新缓存 {key} 失败，继续使用旧数据: {e}", exc_info=True)
            return False

        if payload is None:
            logging.debug(f"缓存 {key} 本次没有获取到新数据，保留旧数据")
            return False

        item = CacheItem(kind=kind, data=deepcopy(payload), decay_time=now + ttl)
        with self._lock.write():
            self._entries[key] = item
        logging.debug(f"缓存 {key} 已刷新，{ttl} 秒后过期")
        return True

    # ------------------------------------------------------------------
    # HTML 片段
    # ------------------------------------------------------------------

    def cache_html(self, key: str, html: str):
        # cached_at 取写入时间而非渲染开始时间：渲染跨过 invalidate_html() 的片段会保留到 TTL 结束
        now = self.now()
        item = CacheItem(kind=KIND_HTML, data=html, decay_time=now + self._html_ttl, cached_at=now)
        with self._html_lock:
            self._html[f"html_{key}"] = item

    def get_html(self, key: str) -> Optional[str]:
        cache_key = f"html_{key}"
        now = self.now()
        min_time = self._html_min_time
        with self._html_lock:
            item = self._html.get(cache_key)
            if item is None:
                return None
            if item.decay_time < now or item.cached_at < min_time:
                del self._html[cache_key]
                return None
            return item.data

    def invalidate_html(self):
        """使当前所有 HTML 片段失效"""
        self._html_min_time = self.now()
        logging.info("HTML缓存已失效")

    # ------------------------------------------------------------------
    # 按类型的读取
    # ------------------------------------------------------------------

    def cache_sitemap(self, sitemap):
        self.put(KEY_SITEMAP, sitemap, ttl=None, kind=KIND_SITEMAP)

    def get_site_map(self):
        return self.get(KEY_SITEMAP)

    def cache_pinterest_posts(self, posts, ttl: Optional[int] = None):
        self.put(KEY_PINTEREST, posts, ttl=ttl, kind=KIND_FEED)

    def get_pinterest_posts(self):
        return self.get(KEY_PINTEREST)

    def cache_instagram_posts(self, posts, ttl: Optional[int] = None):
        self.put(KEY_INSTAGRAM, posts, ttl=ttl, kind=KIND_FEED)

    def get_instagram_posts(self):
        return self.get(KEY_INSTAGRAM)

    def cache_latest_posts(self, excerpts, ttl: Optional[int] = None):
        self.put(KEY_LATEST, excerpts, ttl=ttl, kind=KIND_EXCERPTS)

    def get_latest_posts(self):
        return self.get(KEY_LATEST)

    def cache_featured_posts(self, excerpts, ttl: Optional[int] = None):
        self.put(KEY_FEATURED, excerpts, ttl=ttl, kind=KIND_EXCERPTS)

    def get_featured_posts(self):
        return self.get(KEY_FEATURED)

    def cache_posts_by_tag(self, slot: int, excerpts, ttl: Optional[int] = None):
        self.put(tag_cache_key(slot), excerpts, ttl=ttl, kind=KIND_EXCERPTS)

    def get_posts_by_tag(self, slot: int):
        return self.get(tag_cache_key(slot))
