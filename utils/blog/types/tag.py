"""
标签类型与标签相关的数据库操作，标签的 _id 即 URL 中使用的 slug
"""
from dataclasses import dataclass
from dataclasses import field
import logging
from typing import Iterable, List, Optional

from pymongo.errors import PyMongoError

from utils.blog.errors import ContentLoadError
from utils.blog.types.common import json_list
from utils.blog.types.common import truncate
from utils.blog.types.post import PostMedia

ADMIN_FIELD_LENGTH = 20


@dataclass
class Tag:
    id: str
    title: str = ""
    content: str = ""
    meta_title: str = ""
    meta_description: str = ""
    media: List[PostMedia] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["Tag"]:
        tag_id = doc.get("_id")
        try:
            return cls(
                id=str(tag_id) if tag_id is not None else doc["id"],
                title=str(doc.get("title", "")),
                content=str(doc.get("content", "")),
                meta_title=str(doc.get("meta_title", "")),
                meta_description=str(doc.get("meta_description", "")),
                media=[PostMedia.from_dict(m) for m in json_list(doc.get("media"), "media", tag_id) if isinstance(m, dict)],
            )
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的标签记录 {tag_id}: {e}")
            return None

    @classmethod
    def from_json(cls, data: dict) -> "Tag":
        return cls(
            id=str(data.get("id", "")).strip(),
            title=str(data.get("title", "")),
            content=str(data.get("content", "")),
            meta_title=str(data.get("meta_title", "")),
            meta_description=str(data.get("meta_description", "")),
            media=[PostMedia.from_dict(m) for m in data.get("media") or []],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "meta_title": self.meta_title,
            "meta_description": self.meta_description,
            "media": [m.to_dict() for m in self.media],
        }

    def update_tag_data(self, db) -> str:
        """创建或替换标签，返回标签ID"""
        if not self.id:
            raise ValueError("标签ID不能为空")
        document = self.to_dict()
        document.pop("id")
        db.tags.replace_one({"_id": self.id}, document, upsert=True)
        logging.info(f"保存标签 {self.id}")
        return self.id


@dataclass
class AdminTagExcerpt:
    id: str
    title: str = ""
    content: str = ""
    meta_title: str = ""
    meta_description: str = ""

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def load_tags(db) -> List[Tag]:
    if db is None:
        raise ContentLoadError("tags", "数据库不可用")
    try:
        docs = list(db.tags.find())
    except PyMongoError as e:
        raise ContentLoadError("tags", str(e)) from e
    return [tag for tag in (Tag.from_doc(doc) for doc in docs) if tag is not None]


def admin_fetch_tag_list(db, in_use_tags: Iterable[str]) -> Optional[List[AdminTagExcerpt]]:
    """
    数据库中有扩展信息的标签与文章正在使用的标签合并，按ID排序，文本字段截断到20个字符
    """
    try:
        docs = list(db.tags.find({}, {"media": 0}))
    except PyMongoError as e:
        logging.error(f"获取标签列表失败: {e}")
        return None

    tags = {}
    for doc in docs:
        tag_id = str(doc["_id"])
        tags[tag_id] = AdminTagExcerpt(
            id=tag_id,
            title=truncate(doc.get("title"), ADMIN_FIELD_LENGTH),
            content=truncate(doc.get("content"), ADMIN_FIELD_LENGTH),
            meta_title=truncate(doc.get("meta_title"), ADMIN_FIELD_LENGTH),
            meta_description=truncate(doc.get("meta_description"), ADMIN_FIELD_LENGTH),
        )

    for tag_id in in_use_tags:
        if tag_id not in tags:
            tags[tag_id] = AdminTagExcerpt(id=tag_id)

    return sorted(tags.values(), key=lambda t: t.id)


def admin_fetch_tag(db, tag_id: str) -> Optional[Tag]:
    try:
        doc = db.tags.find_one({"_id": tag_id})
    except PyMongoError as e:
        logging.error(f"获取标签 {tag_id} 失败: {e}")
        return None
    return Tag.from_doc(doc) if doc else None
