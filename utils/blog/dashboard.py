"""
管理后台仪表盘统计
"""
from datetime import datetime
from datetime import timedelta
from datetime import timezone
import logging

from pymongo.errors import PyMongoError

from utils.blog.types.comment import STATUS_NEW
from utils.blog.types.common import truncate

VIEWS_WINDOW_DAYS = 14
RECENT_WINDOW_DAYS = 7
TOP_POSTS_LIMIT = 10


def _day_start(now: datetime, days_back: int) -> datetime:
    day = now - timedelta(days=days_back)
    return day.replace(hour=0, minute=0, second=0, microsecond=0)


def views_by_day(db, now: datetime):
    """最近14天（含今天）每天的浏览量"""
    pipeline = [
        {"$match": {"viewed_at": {"$gte": _day_start(now, VIEWS_WINDOW_DAYS - 1)}}},
        {"$group": {"_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$viewed_at"}}, "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]
    return [{"date": doc["_id"], "count": doc["count"]} for doc in db.post_views.aggregate(pipeline)]


def views_by_post(db, now: datetime):
    """最近14天浏览量前10的文章，附带最近7天的浏览量"""
    recent = _day_start(now, RECENT_WINDOW_DAYS - 1)
    pipeline = [
        {"$match": {"viewed_at": {"$gte": _day_start(now, VIEWS_WINDOW_DAYS - 1)}}},
        {"$group": {
            "_id": "$post_id",
            "last_14": {"$sum": 1},
            "last_7": {"$sum": {"$cond": [{"$gte": ["$viewed_at", recent]}, 1, 0]}},
        }},
        {"$sort": {"last_14": -1}},
        {"$limit": TOP_POSTS_LIMIT},
        {"$lookup": {"from": "posts", "localField": "_id", "foreignField": "_id", "as": "post"}},
    ]
    rows = []
    for doc in db.post_views.aggregate(pipeline):
        post = doc["post"][0] if doc.get("post") else {}
        rows.append({
            "post_id": doc["_id"],
            "last_14": doc["last_14"],
            "last_7": doc["last_7"],
            "title": truncate(post.get("title"), 30),
        })
    return rows


def dashboard_get_statistics(db, now=None) -> dict:
    """汇总仪表盘数据，单项查询失败时该项为空"""
    if now is None:
        now = datetime.now(timezone.utc)

    stats = {
        "views_by_day": [],
        "views_by_post": [],
        "comments_total": 0,
        "comments_new": 0,
        "posts_total": 0,
        "posts_unpublished": 0,
    }

    try:
        stats["views_by_day"] = views_by_day(db, now)
        stats["views_by_post"] = views_by_post(db, now)
    except PyMongoError as e:
        logging.error(f"统计浏览数据失败: {e}")

    try:
        stats["comments_total"] = db.comments.count_documents({})
        stats["comments_new"] = db.comments.count_documents({"status": STATUS_NEW})
        stats["posts_total"] = db.posts.count_documents({})
        stats["posts_unpublished"] = db.posts.count_documents({"state": {"$ne": "published"}})
    except PyMongoError as e:
        logging.error(f"统计文章与评论数量失败: {e}")

    return stats
