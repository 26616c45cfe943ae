"""
评论类型与评论相关的数据库操作

只有 approved 状态的评论会进入内存存储；访客提交的评论以 new 状态保存，等待审核。
"""
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
import logging
from typing import List, Optional

from pymongo.errors import PyMongoError

from utils.blog.errors import CommentValidationError
from utils.blog.errors import ContentLoadError
from utils.blog.types.common import to_unix
from utils.blog.types.common import truncate
from utils.core.config import config_get_string
from utils.core.database import next_sequence

STATUS_NEW = "new"
STATUS_APPROVED = "approved"


@dataclass
class Comment:
    id: int
    parent_id: int = 0
    post_id: int = 0
    status: str = STATUS_NEW
    author_name: str = ""
    author_email: str = ""
    date_posted: int = 0
    content: str = ""

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["Comment"]:
        comment_id = doc.get("_id")
        try:
            return cls(
                id=int(comment_id),
                parent_id=int(doc.get("parent_id") or 0),
                post_id=int(doc["post_id"]),
                status=str(doc["status"]),
                author_name=str(doc.get("author_name", "")),
                author_email=str(doc.get("author_email", "")),
                date_posted=to_unix(doc.get("date_posted")),
                content=str(doc.get("content", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的评论记录 {comment_id}: {e}")
            return None

    @classmethod
    def from_json(cls, data: dict) -> "Comment":
        return cls(
            id=int(data.get("id") or 0),
            parent_id=int(data.get("parent_id") or 0),
            post_id=int(data.get("post_id") or 0),
            status=str(data.get("status", STATUS_NEW)),
            author_name=str(data.get("author_name", "")),
            author_email=str(data.get("author_email", "")),
            content=str(data.get("content", "")),
        )

    def to_dict(self) -> dict:
        return dict(self.__dict__)

    def update_comment_data(self, db) -> int:
        """管理后台编辑评论（审核状态、作者、正文），返回评论ID"""
        result = db.comments.update_one({"_id": self.id}, {
            "$set": {
                "status": self.status,
                "author_name": self.author_name,
                "author_email": self.author_email,
                "content": self.content,
            }
        })
        if result.matched_count == 0:
            raise ValueError(f"评论 {self.id} 不存在")
        logging.info(f"更新评论 {self.id}，状态: {self.status}")
        return self.id


@dataclass
class CommentExcerpt:
    id: int
    post_title: str
    status: str
    author_name: str
    author_email: str
    date_posted: int
    content: str

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def validate_comment(post_id: int, author: str, text: str, bot_stop: str):
    """
    校验访客评论，返回清理后的 (作者, 正文)；不通过时抛出 CommentValidationError
    """
    if config_get_string("bot_block_solution") != (bot_stop or "").lower().strip():
        raise CommentValidationError("Please check your answer to the spam protection question.")

    author_name = (author or "").strip()
    if not author_name:
        raise CommentValidationError("Kindly provide your name.")

    if post_id <= 0:
        raise CommentValidationError("The post could not be found.")

    content = (text or "").strip()
    if not content:
        raise CommentValidationError("The comment can not be empty.")

    return author_name, content


def store_unapproved_comment(db, post_id: int, parent_id: int, author: str, email: str, text: str, bot_stop: str) -> int:
    """保存一条待审核评论，返回新评论ID"""
    author_name, content = validate_comment(post_id, author, text, bot_stop)

    comment_id = next_sequence(db, "comments")
    db.comments.insert_one({
        "_id": comment_id,
        "post_id": post_id,
        "parent_id": parent_id,
        "status": STATUS_NEW,
        "author_name": author_name,
        "author_email": (email or "").strip(),
        "date_posted": datetime.now(timezone.utc),
        "content": content,
    })
    logging.info(f"收到文章 {post_id} 的新评论 {comment_id}")
    return comment_id


def load_comments(db) -> List[Comment]:
    """加载全部已审核评论，按ID升序"""
    if db is None:
        raise ContentLoadError("comments", "数据库不可用")
    try:
        docs = list(db.comments.find({"status": STATUS_APPROVED}).sort("_id", 1))
    except PyMongoError as e:
        raise ContentLoadError("comments", str(e)) from e
    return [c for c in (Comment.from_doc(doc) for doc in docs) if c is not None]


def admin_fetch_comment_list(db) -> Optional[List[CommentExcerpt]]:
    """管理后台评论列表：文章标题截断到25个字符，正文截断到50个字符"""
    pipeline = [
        {"$lookup": {"from": "posts", "localField": "post_id", "foreignField": "_id", "as": "post"}},
        {"$sort": {"_id": -1}},
        {"$project": {"post.content": 0}},
    ]
    try:
        docs = list(db.comments.aggregate(pipeline))
    except PyMongoError as e:
        logging.error(f"获取评论列表失败: {e}")
        return None

    comments = []
    for doc in docs:
        post = doc["post"][0] if doc.get("post") else {}
        try:
            comments.append(CommentExcerpt(
                id=int(doc["_id"]),
                post_title=truncate(post.get("title"), 25),
                status=str(doc.get("status", "")),
                author_name=str(doc.get("author_name", "")),
                author_email=str(doc.get("author_email", "")),
                date_posted=to_unix(doc.get("date_posted")),
                content=truncate(doc.get("content"), 50),
            ))
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的评论记录 {doc.get('_id')}: {e}")
    return comments


def admin_fetch_comment(db, comment_id: int) -> Optional[Comment]:
    try:
        doc = db.comments.find_one({"_id": comment_id})
    except PyMongoError as e:
        logging.error(f"获取评论 {comment_id} 失败: {e}")
        return None
    return Comment.from_doc(doc) if doc else None
