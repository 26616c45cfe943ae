"""
导航菜单
"""
from dataclasses import dataclass
from dataclasses import field
import logging
from typing import List, Optional

from pymongo.errors import PyMongoError

from utils.blog.errors import ContentLoadError
from utils.blog.types.common import json_list
from utils.core.database import next_sequence


@dataclass
class MenuItem:
    title: str
    url: str
    target: Optional[str] = None
    children: Optional[List["MenuItem"]] = None

    @classmethod
    def from_dict(cls, data: dict) -> "MenuItem":
        children = data.get("children")
        return cls(
            title=str(data["title"]),
            url=str(data["url"]),
            target=data.get("target"),
            children=[cls.from_dict(c) for c in children] if children else None,
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "target": self.target,
            "children": [c.to_dict() for c in self.children] if self.children is not None else None,
        }


@dataclass
class Menu:
    id: int
    name: str
    items: List[MenuItem] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["Menu"]:
        menu_id = doc.get("_id")
        try:
            return cls(
                id=int(menu_id or 0),
                name=str(doc["name"]),
                items=[MenuItem.from_dict(i) for i in json_list(doc.get("items"), "items", menu_id)],
            )
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的菜单记录 {menu_id}: {e}")
            return None

    @classmethod
    def from_json(cls, data: dict) -> "Menu":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data["name"]),
            items=[MenuItem.from_dict(i) for i in data.get("items") or []],
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "items": [i.to_dict() for i in self.items]}


def load_menus(db) -> List[Menu]:
    if db is None:
        raise ContentLoadError("menus", "数据库不可用")
    try:
        docs = list(db.menus.find())
    except PyMongoError as e:
        raise ContentLoadError("menus", str(e)) from e
    return [m for m in (Menu.from_doc(doc) for doc in docs) if m is not None]


def update_menu_in_db(db, menu: Menu) -> int:
    """创建（id 为 0）或更新菜单，返回菜单ID"""
    menu_id = menu.id or next_sequence(db, "menus")
    db.menus.update_one(
        {"_id": menu_id},
        {"$set": {"name": menu.name, "items": [i.to_dict() for i in menu.items]}},
        upsert=True,
    )
    return menu_id
