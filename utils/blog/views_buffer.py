"""
文章浏览事件缓冲区：请求线程只追加，维护任务整体取走后批量写库
"""
from dataclasses import dataclass
import threading
from typing import List


@dataclass(frozen=True)
class ViewEvent:
    post_id: int
    viewed_at: int
    remote_ip: str
    user_agent: str
    referer: str


class ViewEventBuffer:

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[ViewEvent] = []

    def append(self, event: ViewEvent):
        with self._lock:
            self._events.append(event)

    def drain(self) -> List[ViewEvent]:
        """按追加顺序取走全部事件并清空缓冲区"""
        with self._lock:
            events, self._events = self._events, []
        return events

    def __len__(self):
        with self._lock:
            return len(self._events)
