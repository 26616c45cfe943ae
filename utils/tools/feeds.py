"""
第三方社交订阅（Instagram / Pinterest）

接口地址与令牌来自配置，地址中的 %TOKEN% 会被替换为令牌。
请求失败或整体返回格式不对时返回 None（缓存保留旧值），单条格式错误的记录被跳过。
"""
from dataclasses import dataclass
import logging
from typing import List, Optional

import requests

from utils.core.config import config_get_string

FEED_TIMEOUT = 10


@dataclass
class InstagramPostCompact:
    link: str
    img_src: str
    location: str = ""
    likes: int = 0
    comments: int = 0


@dataclass
class PinterestPostCompact:
    id: str
    note: str
    img_src: str


def _fetch_feed_data(name: str) -> Optional[list]:
    url = config_get_string(f"{name}_url")
    if not url:
        logging.debug(f"{name}_url 未配置，跳过订阅拉取")
        return None

    token = config_get_string(f"{name}_token")
    try:
        response = requests.get(url.replace("%TOKEN%", token), timeout=FEED_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as e:
        logging.warning(f"拉取 {name} 订阅失败: {e}")
        return None
    except ValueError as e:
        logging.warning(f"解析 {name} 订阅数据失败: {e}")
        return None

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        logging.warning(f"{name} 订阅数据缺少 data 列表")
        return None
    return data


def fetch_instagram_feed() -> Optional[List[InstagramPostCompact]]:
    data = _fetch_feed_data("instagram")
    if data is None:
        return None

    posts = []
    for item in data:
        try:
            posts.append(InstagramPostCompact(link=str(item["permalink"]), img_src=str(item["media_url"])))
        except (KeyError, TypeError) as e:
            logging.warning(f"跳过格式错误的 Instagram 记录: {e}")
    return posts


def fetch_pinterest_feed() -> Optional[List[PinterestPostCompact]]:
    data = _fetch_feed_data("pinterest")
    if data is None:
        return None

    posts = []
    for item in data:
        try:
            posts.append(PinterestPostCompact(
                id=str(item["id"]),
                note=str(item.get("note", "")),
                img_src=str(item["image"]["original"]["url"]),
            ))
        except (KeyError, TypeError) as e:
            logging.warning(f"跳过格式错误的 Pinterest 记录: {e}")
    return posts
