"""
模板渲染上下文
"""
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import fields
from dataclasses import is_dataclass
from typing import Any, List, Optional

from utils.core.config import config_get_string


def _plain(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass
class Context:
    title: str = ""
    subtitle: str = ""
    meta_title: str = ""
    meta_description: str = ""
    locale: str = ""
    canonical: str = ""
    time: int = 0

    # 社交账号
    facebook_app_id: str = ""
    facebook_user: str = ""
    instagram_user: str = ""
    twitter_user: str = ""
    youtube_channel: str = ""

    main_menu: Optional[list] = None

    # 首页按配置展示的5个标签的文章摘要
    excerpts_tag_1: Optional[list] = None
    excerpts_tag_2: Optional[list] = None
    excerpts_tag_3: Optional[list] = None
    excerpts_tag_4: Optional[list] = None
    excerpts_tag_5: Optional[list] = None

    # 文章页
    post: Any = None
    post_related: Optional[list] = None
    post_comments: Optional[list] = None

    # 首页
    instagram_posts: Optional[list] = None
    pinterest_posts: Optional[list] = None
    latest_posts: Optional[list] = None
    featured_posts: Optional[list] = None

    # 搜索页与标签页
    tag: Any = None
    tag_id: Optional[str] = None
    search_string: Optional[str] = None
    post_list: Optional[List] = None
    page_current: int = 0
    page_total: int = 0

    @classmethod
    def base(cls, now: int, main_menu=None) -> "Context":
        """所有页面共用的站点信息"""
        return cls(
            title=config_get_string("title"),
            subtitle=config_get_string("subtitle"),
            meta_title=config_get_string("meta_title"),
            meta_description=config_get_string("meta_description"),
            locale=config_get_string("locale"),
            canonical=f"https://{config_get_string('fqdn')}/",
            time=now,
            facebook_app_id=config_get_string("facebook_app_id"),
            facebook_user=config_get_string("facebook_user"),
            instagram_user=config_get_string("instagram_user"),
            twitter_user=config_get_string("twitter_user"),
            youtube_channel=config_get_string("youtube_channel"),
            main_menu=main_menu,
        )

    def to_dict(self) -> dict:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}
