import logging

from flask import jsonify

from utils.blog.dashboard import dashboard_get_statistics
from utils.core.database import get_db

from . import admin_bp
from .auth import admin_required


@admin_bp.route("/dashboard")
@admin_required
def dashboard():
    """仪表盘统计：近14天浏览量、热门文章、评论与文章数量"""
    db = get_db()
    if db is None:
        logging.error("仪表盘: 无法连接到MongoDB")
        return jsonify(msg="数据库不可用"), 503
    return jsonify(dashboard_get_statistics(db))
