"""
维护任务 - 后台守护线程按固定间隔执行 Blog.run_maintenance
"""
import threading

from utils.core.config import Config
from utils.core.database import get_db
from utils.core.logging import setup_logger

maintenance_logger = setup_logger(logger_name="BlogMaintenance", log_level="INFO")

DEFAULT_INTERVAL_MS = 60000


class MaintenanceLoop:
    """每个工作进程一个维护线程，随进程退出"""

    def __init__(self, blog, interval_ms=None, db_provider=get_db):
        self.blog = blog
        self.db_provider = db_provider
        if interval_ms is None or interval_ms <= 0:
            interval_ms = Config().get_positive_int("maintenance_interval", DEFAULT_INTERVAL_MS)
        self.interval = interval_ms / 1000.0
        self._stop_event = threading.Event()
        self._thread = None

    def run_once(self):
        db = self.db_provider()
        if db is None:
            maintenance_logger.warning("数据库不可用，本次维护只刷新订阅缓存")
        written = self.blog.run_maintenance(db)
        if written:
            maintenance_logger.info(f"维护完成，写入 {written} 条浏览记录")

    def _worker(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.run_once()
            except Exception as e:
                maintenance_logger.error(f"Maintenance cycle error: {e}", exc_info=True)

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._worker, daemon=True, name="BlogMaintenance")
            self._thread.start()
            maintenance_logger.info(f"Blog maintenance service started, interval {self.interval:.1f}s.")

    def stop(self, timeout=None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
