import logging

from flask import Response
from flask import current_app
from flask import jsonify
from flask import redirect
from flask import request
from pymongo.errors import PyMongoError

from utils.blog.errors import CommentValidationError
from utils.blog.types.comment import store_unapproved_comment
from utils.core.config import config_get_string
from utils.core.database import get_db

from . import blog_bp


def get_blog():
    """当前进程的博客存储实例（由 create_app 放入 app.extensions）"""
    return current_app.extensions["blog"]


def _page_from_request() -> int:
    """URL 中的 p 从1开始，内部页码从0开始"""
    page = request.args.get("p", default=1, type=int)
    return page - 1 if page and page > 0 else 0


def _remote_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or ""


def _not_found():
    return Response(get_blog().get_html_base("error_404.html"), status=404, mimetype="text/html")


@blog_bp.route("/")
def index():
    return Response(get_blog().get_html_base("index.html"), mimetype="text/html")


@blog_bp.route("/tag/<path:tag_id>")
def list_by_tag(tag_id):
    """标签列表页"""
    html = get_blog().get_html_tag(tag_id.replace("/", ""), _page_from_request())
    return Response(html, mimetype="text/html")


@blog_bp.route("/search")
def list_by_search():
    """搜索结果页"""
    search_string = request.args.get("q", "").strip()
    html = get_blog().get_html_search(get_db(), search_string, _page_from_request())
    return Response(html, mimetype="text/html")


@blog_bp.route("/sitemap.xml")
def sitemap():
    return Response(get_blog().get_html_site_map(), mimetype="application/xml")


@blog_bp.route("/feed")
@blog_bp.route("/feed/")
def feed():
    return Response(get_blog().get_html_rss_feed(), mimetype="application/rss+xml")


@blog_bp.route("/robots.txt")
def robots():
    fqdn = config_get_string("fqdn")
    body = f"Sitemap: https://{fqdn}/sitemap.xml\nUser-agent: *\nDisallow: /admin"
    return Response(body, mimetype="text/plain")


@blog_bp.route("/comment", methods=["POST"])
def comment():
    """访客提交评论，保存为待审核状态"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"id": 0, "error": "Invalid request."}), 400

    db = get_db()
    if db is None:
        logging.error("提交评论失败: 无法连接到MongoDB")
        return jsonify({"id": 0, "error": "The comment could not be saved."}), 500

    try:
        comment_id = store_unapproved_comment(
            db,
            post_id=int(data.get("post") or 0),
            parent_id=int(data.get("parent") or 0),
            author=str(data.get("author", "")),
            email=str(data.get("email", "")),
            text=str(data.get("text", "")),
            bot_stop=str(data.get("nd", "")),
        )
    except (TypeError, ValueError):
        return jsonify({"id": 0, "error": "Invalid request."}), 400
    except CommentValidationError as e:
        return jsonify({"id": 0, "error": str(e)}), 400
    except PyMongoError as e:
        logging.error(f"保存评论失败: {e}")
        return jsonify({"id": 0, "error": "The comment could not be saved."}), 500

    return jsonify({"id": comment_id, "error": ""})


@blog_bp.route("/fwd/<name>")
def forward(name):
    return redirect(get_blog().lookup_redirect(name), code=302)


@blog_bp.route("/<path:seo_url>")
def post_by_seo_url(seo_url):
    """其余路径都按文章的 SEO 地址处理"""
    seo_url = seo_url.rstrip("/")
    if not seo_url:
        return index()

    html = get_blog().get_html_post(
        seo_url,
        remote_ip=_remote_ip(),
        user_agent=request.headers.get("User-Agent", ""),
        referer=request.headers.get("Referer", ""),
    )
    if html is None:
        return _not_found()
    return Response(html, mimetype="text/html")
