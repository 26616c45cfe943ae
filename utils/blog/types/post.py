"""
文章类型与文章相关的数据库操作

posts 集合使用整数 _id（由 counters 集合分配），author_id 关联 users 集合。
"""
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from datetime import timezone
import logging
import re
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from utils.blog.errors import ContentLoadError
from utils.blog.types.common import from_unix
from utils.blog.types.common import json_list
from utils.blog.types.common import to_unix
from utils.core.database import next_sequence

MORE_MARKER = "<!--more-->"
DEFAULT_THUMBNAIL = "/gallery/not_found.png"
SEARCH_MAX_WORDS = 10


@dataclass
class PostMedia:
    class_: str = ""
    source: str = ""
    title: str = ""
    caption: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PostMedia":
        return cls(
            class_=str(data.get("class", "")),
            source=str(data.get("source", "")),
            title=str(data.get("title", "")),
            caption=str(data.get("caption", "")),
        )

    def to_dict(self) -> dict:
        return {"class": self.class_, "source": self.source, "title": self.title, "caption": self.caption}


@dataclass
class PostLocation:
    title: str = ""
    desc: str = ""
    lat: float = 0.0
    lng: float = 0.0
    typ: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PostLocation":
        return cls(
            title=str(data.get("title", "")),
            desc=str(data.get("desc", "")),
            lat=float(data.get("lat", 0.0)),
            lng=float(data.get("lng", 0.0)),
            typ=str(data.get("typ", "")),
        )

    def to_dict(self) -> dict:
        return {"title": self.title, "desc": self.desc, "lat": self.lat, "lng": self.lng, "typ": self.typ}


@dataclass(frozen=True)
class PostExcerpt:
    """文章摘要，列表页、相关文章与首页缓存使用"""
    id: int
    author: str
    date_posted: int
    title: str
    content: str
    content_full: str
    url_canonical: str
    thumbnail: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "date_posted": self.date_posted,
            "title": self.title,
            "content": self.content,
            "content_full": self.content_full,
            "url_canonical": self.url_canonical,
            "thumbnail": self.thumbnail,
        }


@dataclass
class AdminPostExcerpt:
    id: int
    author: str
    date_posted: int
    date_modified: int
    state: str
    title: str
    meta_title: str
    meta_description: str
    url_canonical: str
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return dict(self.__dict__)


@dataclass
class Post:
    id: int
    author_name: str = ""
    author_home_post: int = 0
    date_posted: int = 0
    date_modified: int = 0
    state: str = "draft"
    title: str = ""
    content: str = ""
    meta_title: str = ""
    meta_description: str = ""
    meta_keywords: List[str] = field(default_factory=list)
    url_canonical: str = ""
    url_historic: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    media: List[PostMedia] = field(default_factory=list)
    locations: List[PostLocation] = field(default_factory=list)
    related_posts: List[int] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["Post"]:
        """
        将 load_posts 聚合结果中的一条文档转换为 Post。
        缺少必需字段时记录日志并返回 None，由调用方跳过该记录。
        """
        post_id = doc.get("_id")
        try:
            author = doc.get("author") or {}
            return cls(
                id=int(post_id),
                author_name=str(author.get("display_name", "")),
                author_home_post=int(author.get("home_post", 0) or 0),
                date_posted=to_unix(doc["date_posted"]),
                date_modified=to_unix(doc.get("date_modified", doc["date_posted"])),
                state=str(doc["state"]),
                title=str(doc["title"]),
                content=str(doc["content"]),
                meta_title=str(doc.get("meta_title", "")),
                meta_description=str(doc.get("meta_description", "")),
                meta_keywords=[str(k) for k in json_list(doc.get("meta_keywords"), "meta_keywords", post_id)],
                url_canonical=str(doc["url_canonical"]),
                url_historic=[str(u) for u in json_list(doc.get("url_historic"), "url_historic", post_id)],
                tags=[str(t) for t in json_list(doc.get("tags"), "tags", post_id)],
                media=[PostMedia.from_dict(m) for m in json_list(doc.get("media"), "media", post_id) if isinstance(m, dict)],
                locations=[PostLocation.from_dict(loc) for loc in json_list(doc.get("locations"), "locations", post_id) if isinstance(loc, dict)],
                related_posts=[int(r) for r in json_list(doc.get("related_posts"), "related_posts", post_id)],
            )
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的文章记录 {post_id}: {e}")
            return None

    @classmethod
    def from_json(cls, data: dict) -> "Post":
        """管理后台提交的文章数据（字段与 to_dict 一致）"""
        return cls(
            id=int(data.get("id") or 0),
            state=str(data.get("state", "draft")),
            title=str(data.get("title", "")),
            content=str(data.get("content", "")),
            meta_title=str(data.get("meta_title", "")),
            meta_description=str(data.get("meta_description", "")),
            meta_keywords=[str(k) for k in data.get("meta_keywords") or []],
            url_canonical=str(data.get("url_canonical", "")),
            url_historic=[str(u) for u in data.get("url_historic") or []],
            tags=[str(t) for t in data.get("tags") or []],
            media=[PostMedia.from_dict(m) for m in data.get("media") or []],
            locations=[PostLocation.from_dict(loc) for loc in data.get("locations") or []],
            related_posts=[int(r) for r in data.get("related_posts") or []],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author_name": self.author_name,
            "author_home_post": self.author_home_post,
            "date_posted": self.date_posted,
            "date_modified": self.date_modified,
            "state": self.state,
            "title": self.title,
            "content": self.content,
            "meta_title": self.meta_title,
            "meta_description": self.meta_description,
            "meta_keywords": list(self.meta_keywords),
            "url_canonical": self.url_canonical,
            "url_historic": list(self.url_historic),
            "tags": list(self.tags),
            "media": [m.to_dict() for m in self.media],
            "locations": [loc.to_dict() for loc in self.locations],
            "related_posts": list(self.related_posts),
        }

    def get_excerpt(self) -> PostExcerpt:
        """
        生成摘要：正文取到第一个 <!--more--> 为止并补上 </p>；
        缩略图取第一张 class 为 featured 的媒体，没有则使用占位图。
        """
        thumbnail = DEFAULT_THUMBNAIL
        for item in self.media:
            if item.class_ == "featured":
                thumbnail = item.source
                break

        return PostExcerpt(
            id=self.id,
            author=self.author_name,
            date_posted=self.date_posted,
            title=self.title,
            content=self.content.split(MORE_MARKER, 1)[0] + "</p>",
            content_full=self.content,
            url_canonical=self.url_canonical,
            thumbnail=thumbnail,
        )

    def update_post_data(self, db, author_id: int) -> int:
        """
        管理后台创建（id 为 0）或更新文章，返回文章ID。
        数据库错误直接抛出，由路由转换为错误信息。
        """
        now = datetime.now(timezone.utc)
        fields = {
            "date_modified": now,
            "state": self.state,
            "title": self.title,
            "content": self.content,
            "meta_title": self.meta_title,
            "meta_description": self.meta_description,
            "meta_keywords": list(self.meta_keywords),
            "url_canonical": self.url_canonical,
            "url_historic": list(self.url_historic),
            "tags": list(self.tags),
            "media": [m.to_dict() for m in self.media],
            "locations": [loc.to_dict() for loc in self.locations],
            "related_posts": list(self.related_posts),
        }

        if self.id == 0:
            post_id = next_sequence(db, "posts")
            fields.update({"_id": post_id, "author_id": author_id, "date_posted": now})
            db.posts.insert_one(fields)
            logging.info(f"新建文章 {post_id}: {self.title}")
            return post_id

        db.posts.update_one({"_id": self.id}, {"$set": fields})
        logging.info(f"更新文章 {self.id}: {self.title}")
        return self.id


def _author_lookup() -> list:
    return [
        {"$lookup": {"from": "users", "localField": "author_id", "foreignField": "_id", "as": "author"}},
        {"$unwind": "$author"},
    ]


def load_posts(db) -> List[Post]:
    """
    加载全部非草稿文章，按ID降序（标签页因此总是最新文章在前）。
    无法解析的单条记录被跳过；数据库错误抛出 ContentLoadError。
    """
    if db is None:
        raise ContentLoadError("posts", "数据库不可用")

    pipeline = [{"$match": {"state": {"$nin": ["draft"]}}}] + _author_lookup() + [{"$sort": {"_id": -1}}]
    try:
        docs = list(db.posts.aggregate(pipeline))
    except PyMongoError as e:
        raise ContentLoadError("posts", str(e)) from e

    posts = []
    for doc in docs:
        post = Post.from_doc(doc)
        if post is not None:
            posts.append(post)
    return posts


def fetch_latest_posts(db, limit: int) -> List[int]:
    """按发布时间倒序返回最新文章ID"""
    cursor = db.posts.find({"state": {"$nin": ["draft"]}}, {"_id": 1}).sort("date_posted", -1).limit(limit)
    return [int(doc["_id"]) for doc in cursor]


def fetch_most_viewed_posts(db, limit: int) -> List[int]:
    """返回最近30天浏览量最高的文章ID"""
    since = datetime.now(timezone.utc) - timedelta(days=30)
    pipeline = [
        {"$match": {"viewed_at": {"$gt": since}}},
        {"$group": {"_id": "$post_id", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": limit},
    ]
    return [int(doc["_id"]) for doc in db.post_views.aggregate(pipeline)]


def fetch_posts_by_search_string(db, search_string: str) -> List[int]:
    """
    搜索文章：最多取前10个词，标题包含全部词或正文包含全部词即命中，按ID降序。
    """
    words = search_string.split()[:SEARCH_MAX_WORDS]
    if not words:
        return []

    def all_words_in(field_name):
        return {"$and": [{field_name: {"$regex": re.escape(word), "$options": "i"}} for word in words]}

    query = {
        "state": {"$nin": ["draft"]},
        "$or": [all_words_in("title"), all_words_in("content")],
    }
    cursor = db.posts.find(query, {"_id": 1}).sort("_id", -1)
    return [int(doc["_id"]) for doc in cursor]


def log_post_views(db, views) -> int:
    """批量写入浏览记录，返回写入条数"""
    if not views:
        return 0
    documents = [{
        "post_id": v.post_id,
        "viewed_at": from_unix(v.viewed_at),
        "remote_ip": v.remote_ip,
        "user_agent": v.user_agent,
        "referer": v.referer,
    } for v in views]
    result = db.post_views.insert_many(documents, ordered=True)
    return len(result.inserted_ids)


def admin_fetch_post_list(db) -> Optional[List[AdminPostExcerpt]]:
    """管理后台文章列表（包含草稿）"""
    pipeline = _author_lookup() + [
        {"$sort": {"_id": -1}},
        {"$project": {"content": 0, "media": 0, "locations": 0}},
    ]
    try:
        docs = list(db.posts.aggregate(pipeline))
    except PyMongoError as e:
        logging.error(f"获取文章列表失败: {e}")
        return None

    posts = []
    for doc in docs:
        try:
            posts.append(AdminPostExcerpt(
                id=int(doc["_id"]),
                author=str(doc["author"].get("display_name", "")),
                date_posted=to_unix(doc.get("date_posted")),
                date_modified=to_unix(doc.get("date_modified")),
                state=str(doc.get("state", "")),
                title=str(doc.get("title", "")),
                meta_title=str(doc.get("meta_title", "")),
                meta_description=str(doc.get("meta_description", "")),
                url_canonical=str(doc.get("url_canonical", "")),
                tags=[str(t) for t in json_list(doc.get("tags"), "tags", doc.get("_id"))],
            ))
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的文章记录 {doc.get('_id')}: {e}")
    return posts


def admin_fetch_post(db, post_id: int) -> Optional[Post]:
    """管理后台按ID获取文章（包含草稿）"""
    pipeline = [{"$match": {"_id": post_id}}] + _author_lookup()
    try:
        docs = list(db.posts.aggregate(pipeline))
    except PyMongoError as e:
        logging.error(f"获取文章 {post_id} 失败: {e}")
        return None
    return Post.from_doc(docs[0]) if docs else None


def group_ids_by_tag(posts: List[Post]) -> Dict[str, List[int]]:
    """
    标签 -> 文章ID列表，保持文章加载顺序。标签中的空格替换为 "-" 以便用在URL里。
    """
    index: Dict[str, List[int]] = {}
    for post in posts:
        for tag in post.tags:
            index.setdefault(tag.replace(" ", "-"), []).append(post.id)
    return index
