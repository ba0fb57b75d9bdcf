"""
按书籍串行化比对任务的进程内锁

同一本书的两次比对并发执行时，章节/书籍计数器的“读-改-写”会丢失更新；
这里保证同一时刻每本书最多只有一个比对（或基线切换）在运行，
第二个请求直接被拒绝而不是排队等待。
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class BookLockRegistry:
    """书籍 ID -> 锁 的注册表"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, book_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(book_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[book_id] = lock
            return lock

    def is_locked(self, book_id: str) -> bool:
        return self._lock_for(book_id).locked()

    @contextmanager
    def hold(self, book_id: str) -> Iterator[None]:
        lock = self._lock_for(book_id)
        if not lock.acquire(blocking=False):
            logger.warning("书籍 %s 已有比对在运行，拒绝新的请求", book_id)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="该书籍已有比对正在进行，请稍后再试",
            )
        try:
            yield
        finally:
            lock.release()


book_locks = BookLockRegistry()


def get_book_locks() -> BookLockRegistry:
    return book_locks
