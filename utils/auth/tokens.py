"""
访问令牌：JWT 放在 HTTP-only cookie 中，sub 为用户ID，附带显示名和权限列表
"""
from flask_jwt_extended import create_access_token
from flask_jwt_extended import get_jwt
from flask_jwt_extended import verify_jwt_in_request

from utils.auth.user import PERMISSION_ADMIN


def create_user_token(user) -> str:
    return create_access_token(identity=str(user.id), additional_claims={"name": user.display_name, "permissions": list(user.permissions)})


def current_claims(optional: bool = False):
    """
    校验当前请求的令牌并返回其声明；optional 为 True 时没有令牌返回 None。
    令牌无效时由 flask_jwt_extended 抛出异常。
    """
    if verify_jwt_in_request(optional=optional, locations=["cookies"]) is None:
        return None
    return get_jwt()


def is_admin(claims) -> bool:
    return bool(claims) and PERMISSION_ADMIN in (claims.get("permissions") or [])
