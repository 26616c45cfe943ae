"""
后台用户：users 集合中保存登录名、Werkzeug 生成的密码哈希、显示名和权限列表
"""
from dataclasses import dataclass
from dataclasses import field
import logging
from typing import List, Optional

from pymongo.errors import PyMongoError
from werkzeug.security import check_password_hash

from utils.blog.types.common import json_list

PERMISSION_ADMIN = "admin"


@dataclass
class User:
    id: int
    login: str
    password_hash: str = ""
    display_name: str = ""
    home_post: int = 0
    permissions: List[str] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["User"]:
        try:
            return cls(
                id=int(doc["_id"]),
                login=str(doc["login"]),
                password_hash=str(doc.get("password_hash", "")),
                display_name=str(doc.get("display_name", "")),
                home_post=int(doc.get("home_post") or 0),
                permissions=[str(p) for p in json_list(doc.get("permissions"), "permissions", doc.get("_id"))],
            )
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"无法解析用户记录 {doc.get('_id')}: {e}")
            return None

    def check_password(self, password: str) -> bool:
        if not self.password_hash or not password:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return PERMISSION_ADMIN in self.permissions


def get_user_from_db(db, login: str) -> Optional[User]:
    """按登录名查找用户"""
    if db is None or not login:
        return None
    try:
        doc = db.users.find_one({"login": login})
    except PyMongoError as e:
        logging.error(f"查询用户 {login} 失败: {e}")
        return None
    return User.from_doc(doc) if doc else None


def authenticate(db, login: str, password: str) -> Optional[User]:
    """校验登录名和密码，成功时返回用户"""
    user = get_user_from_db(db, login)
    if user is None or not user.check_password(password):
        logging.warning(f"用户 {login!r} 登录失败")
        return None
    return user
