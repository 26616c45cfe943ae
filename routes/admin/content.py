"""
后台内容管理接口（全部返回JSON）

保存类接口只写数据库，不会自动重新加载内存数据；
编辑完成后由前端调用 reload_data 让修改生效。
"""
import logging

from flask import Response
from flask import current_app
from flask import jsonify
from flask import render_template
from flask import request
from flask_jwt_extended import get_jwt_identity
from pymongo.errors import PyMongoError

from utils.blog.errors import ContentLoadError
from utils.blog.types.comment import Comment
from utils.blog.types.comment import admin_fetch_comment
from utils.blog.types.comment import admin_fetch_comment_list
from utils.blog.types.gallery import load_gallery
from utils.blog.types.menu import Menu
from utils.blog.types.menu import load_menus
from utils.blog.types.menu import update_menu_in_db
from utils.blog.types.post import Post
from utils.blog.types.post import admin_fetch_post
from utils.blog.types.post import admin_fetch_post_list
from utils.blog.types.redirect import Redirect
from utils.blog.types.redirect import load_redirects
from utils.blog.types.redirect import update_redirect_in_db
from utils.blog.types.snippet import Snippet
from utils.blog.types.snippet import load_snippets
from utils.blog.types.snippet import update_snippet_in_db
from utils.blog.types.tag import Tag
from utils.blog.types.tag import admin_fetch_tag
from utils.blog.types.tag import admin_fetch_tag_list
from utils.core.database import get_db

from . import admin_bp
from .auth import admin_required


DB_UNAVAILABLE = "数据库不可用"


def _db_or_error():
    db = get_db()
    if db is None:
        logging.error("无法连接到MongoDB")
    return db


def _as_json(items):
    if items is None:
        return jsonify(None)
    if isinstance(items, list):
        return jsonify([item.to_dict() for item in items])
    return jsonify(items.to_dict())


def _request_json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


@admin_bp.route("/reload_data")
@admin_required
def reload_data():
    """按类型重新加载内存数据，或使 HTML 缓存失效"""
    blog = current_app.extensions["blog"]
    which = request.args.get("which", "")

    if which == "html":
        return jsonify(success=True, num=blog.invalidate_html_cache())

    reloaders = {
        "comments": blog.reload_comments,
        "menus": blog.reload_menus,
        "posts": blog.reload_posts,
        "redirects": blog.reload_redirects,
        "tags": blog.reload_tags,
    }
    reload = reloaders.get(which)
    if reload is None:
        return jsonify(success=True, num=0)

    try:
        num = reload(_db_or_error())
    except ContentLoadError as e:
        logging.error(f"重新加载 {which} 失败: {e}")
        return jsonify(success=False, num=0)
    logging.info(f"管理员重新加载了 {which}: {num}")
    return jsonify(success=True, num=num)


@admin_bp.route("/preview_post", methods=["POST"])
@admin_required
def preview_post():
    """用提交的上下文渲染文章模板，不写库也不缓存"""
    context = _request_json()
    if context is None:
        return jsonify(msg="无效的请求格式"), 400
    try:
        html = render_template("post.html", **context)
    except Exception as e:
        logging.error(f"预览文章失败: {e}", exc_info=True)
        return Response("Template problem", status=500, mimetype="text/html")
    return Response(html, mimetype="text/html")


# ------------------------------------------------------------------
# 文章
# ------------------------------------------------------------------


@admin_bp.route("/get_posts")
@admin_required
def get_posts():
    db = _db_or_error()
    return _as_json(admin_fetch_post_list(db) if db is not None else None)


@admin_bp.route("/get_post")
@admin_required
def get_post():
    post_id = request.args.get("id", type=int)
    db = _db_or_error()
    if post_id is None or db is None:
        return jsonify(None)
    return _as_json(admin_fetch_post(db, post_id))


@admin_bp.route("/set_post", methods=["POST"])
@admin_required
def set_post():
    data = _request_json()
    if data is None:
        return jsonify(post_id=0, error="无效的请求格式"), 400
    db = _db_or_error()
    if db is None:
        return jsonify(post_id=0, error=DB_UNAVAILABLE)
    try:
        post = Post.from_json(data)
        post_id = post.update_post_data(db, author_id=int(get_jwt_identity()))
    except (TypeError, ValueError, PyMongoError) as e:
        logging.error(f"保存文章失败: {e}")
        return jsonify(post_id=0, error=str(e))
    return jsonify(post_id=post_id, error="")


# ------------------------------------------------------------------
# 标签
# ------------------------------------------------------------------


@admin_bp.route("/get_tags")
@admin_required
def get_tags():
    db = _db_or_error()
    if db is None:
        return jsonify(None)
    in_use_tags = current_app.extensions["blog"].get_all_in_use_tags()
    return _as_json(admin_fetch_tag_list(db, in_use_tags))


@admin_bp.route("/get_tag")
@admin_required
def get_tag():
    tag_id = request.args.get("id", "")
    db = _db_or_error()
    if not tag_id or db is None:
        return jsonify(None)
    return _as_json(admin_fetch_tag(db, tag_id))


@admin_bp.route("/set_tag", methods=["POST"])
@admin_required
def set_tag():
    data = _request_json()
    if data is None:
        return jsonify(tag_id="", error="无效的请求格式"), 400
    db = _db_or_error()
    if db is None:
        return jsonify(tag_id="", error=DB_UNAVAILABLE)
    try:
        tag_id = Tag.from_json(data).update_tag_data(db)
    except (TypeError, ValueError, PyMongoError) as e:
        logging.error(f"保存标签失败: {e}")
        return jsonify(tag_id="", error=str(e))
    return jsonify(tag_id=tag_id, error="")


# ------------------------------------------------------------------
# 评论
# ------------------------------------------------------------------


@admin_bp.route("/get_comments")
@admin_required
def get_comments():
    db = _db_or_error()
    return _as_json(admin_fetch_comment_list(db) if db is not None else None)


@admin_bp.route("/get_comment")
@admin_required
def get_comment():
    comment_id = request.args.get("id", type=int)
    db = _db_or_error()
    if comment_id is None or db is None:
        return jsonify(None)
    return _as_json(admin_fetch_comment(db, comment_id))


@admin_bp.route("/set_comment", methods=["POST"])
@admin_required
def set_comment():
    data = _request_json()
    if data is None:
        return jsonify(comment_id=0, error="无效的请求格式"), 400
    db = _db_or_error()
    if db is None:
        return jsonify(comment_id=0, error=DB_UNAVAILABLE)
    try:
        comment_id = Comment.from_json(data).update_comment_data(db)
    except (TypeError, ValueError, PyMongoError) as e:
        logging.error(f"保存评论失败: {e}")
        return jsonify(comment_id=0, error=str(e))
    return jsonify(comment_id=comment_id, error="")


# ------------------------------------------------------------------
# 菜单、片段、转发、图库
# ------------------------------------------------------------------


def _list_or_none(loader):
    db = _db_or_error()
    if db is None:
        return jsonify(None)
    try:
        return _as_json(loader(db))
    except ContentLoadError as e:
        logging.error(f"读取数据失败: {e}")
        return jsonify(None)


def _save(factory, writer):
    data = _request_json()
    if data is None:
        return jsonify(id=0, error="无效的请求格式"), 400
    db = _db_or_error()
    if db is None:
        return jsonify(id=0, error=DB_UNAVAILABLE)
    try:
        item_id = writer(db, factory(data))
    except (KeyError, TypeError, ValueError, PyMongoError) as e:
        logging.error(f"保存失败: {e}")
        return jsonify(id=0, error=str(e))
    return jsonify(id=item_id, error="")


@admin_bp.route("/get_menus")
@admin_required
def get_menus():
    return _list_or_none(load_menus)


@admin_bp.route("/set_menu", methods=["POST"])
@admin_required
def set_menu():
    return _save(Menu.from_json, update_menu_in_db)


@admin_bp.route("/get_snippets")
@admin_required
def get_snippets():
    return _list_or_none(load_snippets)


@admin_bp.route("/set_snippet", methods=["POST"])
@admin_required
def set_snippet():
    return _save(Snippet.from_json, update_snippet_in_db)


@admin_bp.route("/get_redirects")
@admin_required
def get_redirects():
    return _list_or_none(load_redirects)


@admin_bp.route("/set_redirect", methods=["POST"])
@admin_required
def set_redirect():
    return _save(Redirect.from_json, update_redirect_in_db)


@admin_bp.route("/get_gallery")
@admin_required
def get_gallery():
    return _list_or_none(load_gallery)
