"""
文档字段转换的公共函数
"""
from datetime import datetime
from datetime import timezone
import json
import logging


def json_list(value, field_name: str, record_id=None) -> list:
    """
    读取列表字段。旧数据可能以JSON字符串保存，解析失败时记录日志并返回空列表。
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            parsed = json.loads(value)
        except ValueError as e:
            logging.warning(f"记录 {record_id} 的字段 {field_name} 不是合法JSON: {e}")
            return []
        if isinstance(parsed, list):
            return parsed
    logging.warning(f"记录 {record_id} 的字段 {field_name} 不是列表，已忽略")
    return []


def to_unix(value) -> int:
    """datetime 或数字 -> unix 秒；无时区的 datetime 按 UTC 处理"""
    if value is None:
        return 0
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return int(value)


def from_unix(seconds) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def truncate(text, length: int) -> str:
    return (text or "")[:length]
