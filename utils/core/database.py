import atexit
import logging
import os
import threading
from typing import Optional

from pymongo import ASCENDING
from pymongo import DESCENDING
from pymongo import MongoClient
from pymongo import ReturnDocument
from pymongo.server_api import ServerApi

# 全局MongoDB客户端实例
_mongo_client: Optional[MongoClient] = None
_client_lock = threading.Lock()


def get_mongo_client():
    """
    获取MongoDB客户端实例 - 使用单例模式和连接池
    """
    global _mongo_client

    # 如果客户端已存在且连接有效，直接返回
    if _mongo_client is not None:
        try:
            _mongo_client.admin.command('ismaster')
            return _mongo_client
        except Exception:
            # 连接已断开，需要重新创建
            _mongo_client = None

    # 使用锁确保线程安全
    with _client_lock:
        # 双重检查，防止并发创建多个客户端
        if _mongo_client is not None:
            try:
                _mongo_client.admin.command('ismaster')
                return _mongo_client
            except Exception:
                _mongo_client = None

        mongo_uri = os.getenv("MONGODB_URI")
        if not mongo_uri:
            logging.error("MONGODB_URI environment variable not set.")
            return None

        try:
            _mongo_client = MongoClient(
                mongo_uri,
                server_api=ServerApi('1'),
                maxPoolSize=int(os.getenv("MONGODB_MAX_POOL_SIZE", "10")),
                minPoolSize=1,
                maxIdleTimeMS=300000,  # 连接最大空闲时间（5分钟）
                waitQueueTimeoutMS=10000,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                socketTimeoutMS=30000,
            )

            # 只在初次创建时ping一次
            _mongo_client.admin.command('ping')
            logging.info("Successfully connected to MongoDB with connection pooling!")
            return _mongo_client

        except Exception as e:
            logging.error(f"Error connecting to MongoDB: {e}")
            _mongo_client = None
            return None


def get_db():
    """
    返回博客数据库实例，库名由 MONGODB_DATABASE 指定
    """
    client = get_mongo_client()
    return client.get_database(os.getenv("MONGODB_DATABASE", "blog")) if client is not None else None


def close_mongo_client():
    """
    关闭MongoDB客户端连接（在应用程序结束时调用）
    """
    global _mongo_client
    with _client_lock:
        if _mongo_client is not None:
            _mongo_client.close()
            _mongo_client = None
            logging.info("MongoDB client connection closed.")


atexit.register(close_mongo_client)


def next_sequence(db, name: str) -> int:
    """
    从 counters 集合分配一个自增整数ID（文章、评论、菜单等使用整数主键）
    """
    doc = db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


def ensure_indexes(db=None) -> bool:
    """
    确保所需的MongoDB索引存在。

    如果成功则返回True，否则返回False。
    """
    if db is None:
        db = get_db()
    if db is None:
        logging.error("ensure_indexes: 无法获取MongoDB客户端")
        return False

    try:
        # posts: 按状态过滤 + 按发布时间排序（最新文章）
        result_name = db.posts.create_index(
            [("state", ASCENDING), ("date_posted", DESCENDING)],
            name="idx_posts_state_date_posted",
            background=True,
        )
        logging.debug(f"已确保索引存在: posts.{result_name}")

        # post_views: 热门文章统计与仪表盘都按时间窗口聚合
        result_name_views = db.post_views.create_index(
            [("viewed_at", DESCENDING), ("post_id", ASCENDING)],
            name="idx_post_views_viewed_at_post_id",
            background=True,
        )
        logging.debug(f"已确保索引存在: post_views.{result_name_views}")

        # comments: 启动时只加载已审核评论
        result_name_comments = db.comments.create_index(
            [("status", ASCENDING), ("post_id", ASCENDING)],
            name="idx_comments_status_post_id",
            background=True,
        )
        logging.debug(f"已确保索引存在: comments.{result_name_comments}")

        # users: 登录名唯一
        result_name_users = db.users.create_index(
            [("login", ASCENDING)],
            name="idx_users_login_unique",
            unique=True,
            background=True,
        )
        logging.debug(f"已确保索引存在: users.{result_name_users}")

        # redirects / menus 按名称查找
        db.redirects.create_index([("name", ASCENDING)], name="idx_redirects_name", background=True)
        db.menus.create_index([("name", ASCENDING)], name="idx_menus_name", background=True)

        # gallery: 按上传时间倒序列出
        db.gallery.create_index([("uploaded_at", DESCENDING)], name="idx_gallery_uploaded_at_desc", background=True)

        return True
    except Exception as e:
        logging.error(f"创建MongoDB索引失败: {e}", exc_info=True)
        return False
