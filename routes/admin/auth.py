from functools import wraps
import logging

from flask import jsonify
from flask import request
from flask_jwt_extended import set_access_cookies
from flask_jwt_extended import unset_jwt_cookies

from utils.auth.tokens import create_user_token
from utils.auth.tokens import current_claims
from utils.auth.tokens import is_admin
from utils.auth.user import authenticate
from utils.core.database import get_db

from . import auth_bp


def admin_required(fn):
    """管理员权限验证装饰器：令牌有效且权限列表包含 admin"""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            claims = current_claims()
        except Exception as e:
            logging.warning(f"JWT validation failed for path '{request.path}': {e}")
            return jsonify(msg="Token无效或已过期"), 401
        if not is_admin(claims):
            logging.warning(f"用户 {claims.get('sub')} 没有管理员权限，访问 '{request.path}' 被拒绝")
            return jsonify(msg="需要管理员权限"), 401
        return fn(*args, **kwargs)

    return wrapper


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True)
    if not data:
        logging.error("登录失败: 请求体不是有效的JSON或Content-Type头缺失。")
        return jsonify({"msg": "无效的请求格式"}), 400

    user = authenticate(get_db(), str(data.get("login", "")), str(data.get("pass", "")))
    if user is None:
        return jsonify({"msg": "登录名或密码错误"}), 401

    logging.info(f"用户 {user.login} 登录成功。")
    response = jsonify(displayName=user.display_name, userId=user.id)
    set_access_cookies(response, create_user_token(user))
    return response


@auth_bp.route("/check")
def check():
    try:
        claims = current_claims()
    except Exception as e:
        logging.debug(f"令牌校验失败: {e}")
        return jsonify(error="token is invalid"), 401
    return jsonify(displayName=claims.get("name", ""), userId=int(claims["sub"]))


@auth_bp.route("/logout")
def logout():
    response = jsonify(msg="已退出登录")
    unset_jwt_cookies(response)
    return response
