"""
核心基础设施模块
包含配置管理、数据库连接、日志配置、读写锁等基础功能
"""

from .config import Config, config_get_int, config_get_string
from .database import ensure_indexes, get_db, get_mongo_client, next_sequence
from .logging import setup_logger
from .rwlock import RWLock

__all__ = [
    'Config', 'config_get_int', 'config_get_string', 'get_db', 'get_mongo_client', 'next_sequence', 'ensure_indexes', 'setup_logger',
    'RWLock'
]
