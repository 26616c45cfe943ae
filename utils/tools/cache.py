"""
应用级小型缓存
"""
import logging
import threading

from cachetools import TTLCache, cached
from cachetools.keys import hashkey

from utils.blog.types.post import fetch_posts_by_search_string
from utils.core.config import Config

# 搜索结果（文章ID列表）短时间缓存，翻页时不必重复查询数据库
# maxsize=256: 最多保留256个不同的搜索词
search_results_cache = TTLCache(maxsize=256, ttl=Config().get_positive_int("search_cache_ttl", 300))
_search_results_lock = threading.Lock()


@cached(search_results_cache, key=lambda db, search_string: hashkey(search_string.strip().lower()), lock=_search_results_lock)
def search_post_ids(db, search_string):
    """
    返回搜索命中的文章ID（按ID降序），结果缓存 search_cache_ttl 秒。
    数据库错误向上抛出，不会被缓存。
    """
    logging.info(f"搜索缓存未命中，查询数据库: {search_string!r}")
    return tuple(fetch_posts_by_search_string(db, search_string))


def clear_search_results_cache():
    """
    清除搜索结果缓存，文章重新加载后调用。
    """
    with _search_results_lock:
        search_results_cache.clear()
    logging.info("搜索结果缓存已清除。")
