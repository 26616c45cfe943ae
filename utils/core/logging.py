"""
日志配置 - 为长期运行的组件提供统一的日志记录设置
"""
import logging
import os
from logging.handlers import TimedRotatingFileHandler


def setup_logger(logger_name="AppLogger", log_level="INFO", log_file=None):
    """
    配置并返回一个按天轮换的日志记录器。
    未指定 log_file 时使用 "<logger_name>.log"。
    """
    log_directory = os.getenv("LOG_DIR", "log")
    os.makedirs(log_directory, exist_ok=True)
    log_filepath = os.path.join(log_directory, log_file or f"{logger_name}.log")

    logger = logging.getLogger(logger_name)
    # 从环境变量中获取日志级别，如果未设置则使用默认值
    effective_log_level = os.getenv("LOG_LEVEL", log_level).upper()
    logger.setLevel(effective_log_level)

    # 防止重复添加处理器
    if not logger.handlers:
        handler = TimedRotatingFileHandler(log_filepath, when="midnight", interval=1, backupCount=7, encoding="utf-8", delay=True)
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
