"""
配置管理模块
所有博客配置项都来自环境变量（可由 .env 文件提供），按键名读取字符串或整数
"""

import logging
import os


class Config:
    """配置类，用于管理所有配置信息（单例模式）"""

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        # 加载环境变量配置
        from dotenv import load_dotenv

        load_dotenv()

        self._initialized = True

    @staticmethod
    def _env_name(key: str) -> str:
        # posts_per_page -> POSTS_PER_PAGE
        return key.strip().upper()

    def get_string(self, key: str) -> str:
        """读取字符串配置，缺失时返回空字符串"""
        return os.getenv(self._env_name(key), "")

    def get_int(self, key: str) -> int:
        """读取整数配置，缺失或无法解析时返回0"""
        raw = os.getenv(self._env_name(key), "").strip()
        if not raw:
            return 0
        try:
            return int(raw)
        except ValueError:
            logging.warning(f"配置项 {key} 的值不是整数: {raw!r}，按0处理")
            return 0

    def get_positive_int(self, key: str, default: int) -> int:
        """读取必须大于0的整数配置，无效时使用默认值"""
        value = self.get_int(key)
        if value <= 0:
            logging.warning(f"{key}配置无效或未设置，使用默认值{default}")
            return default
        return value


def config_get_string(key: str) -> str:
    return Config().get_string(key)


def config_get_int(key: str) -> int:
    return Config().get_int(key)
