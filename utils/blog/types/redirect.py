"""
短链接转发：/fwd/<name> -> target
"""
from dataclasses import dataclass
import logging
from typing import List, Optional

from pymongo.errors import PyMongoError

from utils.blog.errors import ContentLoadError
from utils.core.database import next_sequence


@dataclass
class Redirect:
    id: int
    name: str
    target: str

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["Redirect"]:
        try:
            return cls(id=int(doc.get("_id") or 0), name=str(doc["name"]), target=str(doc["target"]))
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的转发记录 {doc.get('_id')}: {e}")
            return None

    @classmethod
    def from_json(cls, data: dict) -> "Redirect":
        return cls(id=int(data.get("id") or 0), name=str(data["name"]).strip(), target=str(data["target"]).strip())

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def load_redirects(db) -> List[Redirect]:
    if db is None:
        raise ContentLoadError("redirects", "数据库不可用")
    try:
        docs = list(db.redirects.find())
    except PyMongoError as e:
        raise ContentLoadError("redirects", str(e)) from e
    return [r for r in (Redirect.from_doc(doc) for doc in docs) if r is not None]


def update_redirect_in_db(db, redirect: Redirect) -> int:
    redirect_id = redirect.id or next_sequence(db, "redirects")
    db.redirects.update_one(
        {"_id": redirect_id},
        {"$set": {"name": redirect.name, "target": redirect.target}},
        upsert=True,
    )
    return redirect_id
