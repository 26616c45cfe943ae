"""
工具类模块
包含第三方订阅拉取和搜索结果缓存
"""

from .cache import clear_search_results_cache, search_post_ids, search_results_cache
from .feeds import InstagramPostCompact, PinterestPostCompact, fetch_instagram_feed, fetch_pinterest_feed

__all__ = [
    'clear_search_results_cache', 'search_post_ids', 'search_results_cache', 'InstagramPostCompact', 'PinterestPostCompact',
    'fetch_instagram_feed', 'fetch_pinterest_feed'
]
