"""
站点地图：全部文章的规范地址（附带本站图片）以及所有标签列表页（按页展开）
"""
from dataclasses import dataclass
from dataclasses import field
import math
from typing import Dict, List, Optional

TAG_PAGE_AGE = 604800  # 标签页的 lastmod 统一记为一周前
POST_PRIORITY = "0.9"
TAG_PRIORITY = "0.5"


@dataclass
class SiteMapImage:
    loc: str
    title: Optional[str] = None
    caption: Optional[str] = None


@dataclass
class SiteMapUrl:
    loc: str
    lastmod: int
    changefreq: Optional[str] = None
    priority: Optional[str] = None
    images: Optional[List[SiteMapImage]] = None


@dataclass
class SiteMap:
    content: List[SiteMapUrl] = field(default_factory=list)


def build_sitemap(posts, tag_index: Dict[str, List[int]], fqdn: str, per_page: int, now: int) -> SiteMap:
    """
    posts 与 tag_index 的顺序即输出顺序。只有地址中包含本站域名的图片才会列出。
    """
    base_url = f"https://{fqdn}/"
    locs = []

    for post in posts:
        images = [
            SiteMapImage(loc=m.source, title=m.title or None, caption=m.caption or None)
            for m in post.media
            if fqdn and fqdn in m.source
        ]
        locs.append(SiteMapUrl(
            loc=f"{base_url}{post.url_canonical}",
            lastmod=post.date_modified,
            priority=POST_PRIORITY,
            images=images or None,
        ))

    tag_lastmod = now - TAG_PAGE_AGE
    for tag, post_ids in tag_index.items():
        pages = math.ceil(len(post_ids) / per_page)
        for page in range(1, pages + 1):
            loc = f"{base_url}tag/{tag}" if page == 1 else f"{base_url}tag/{tag}?p={page}"
            locs.append(SiteMapUrl(loc=loc, lastmod=tag_lastmod, priority=TAG_PRIORITY))

    return SiteMap(content=locs)
