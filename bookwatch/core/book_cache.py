"""
书籍代码 -> 提供方书目条目 的进程内缓存

过期、为空或被显式失效时从 book_catalog 表整体重建；书目有写入时必须调用 invalidate()。
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from bookwatch.core.config import settings
from bookwatch.models import BookCatalogEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedBookIdentity:
    book_code: str
    provider_book_id: int
    title: str
    language: str
    is_active: bool


@dataclass(frozen=True)
class CacheSnapshot:
    entries: int
    last_refreshed: Optional[datetime]
    ttl_seconds: int
    stale: bool


class BookIdentityCache:
    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = int(ttl_seconds)
        self._lock = threading.Lock()
        self._entries: dict[str, CachedBookIdentity] = {}
        self._last_refreshed: Optional[datetime] = None

    def _is_stale(self, now: datetime) -> bool:
        if self._last_refreshed is None or not self._entries:
            return True
        return now - self._last_refreshed > timedelta(seconds=self.ttl_seconds)

    def refresh(self, db: Session, now: Optional[datetime] = None) -> int:
        rows = db.query(BookCatalogEntry).all()
        entries = {
            row.bookCode.upper(): CachedBookIdentity(
                book_code=row.bookCode.upper(),
                provider_book_id=row.providerBookId,
                title=row.title,
                language=row.language,
                is_active=bool(row.isActive),
            )
            for row in rows
        }
        with self._lock:
            self._entries = entries
            self._last_refreshed = now or datetime.utcnow()
        logger.info("书目缓存已刷新，共 %s 条", len(entries))
        return len(entries)

    def resolve(self, db: Session, code: str, now: Optional[datetime] = None) -> Optional[CachedBookIdentity]:
        now = now or datetime.utcnow()
        with self._lock:
            stale = self._is_stale(now)
        if stale:
            self.refresh(db, now=now)
        with self._lock:
            return self._entries.get((code or "").strip().upper())

    def invalidate(self) -> None:
        with self._lock:
            self._last_refreshed = None
        logger.debug("书目缓存已失效")

    def snapshot(self, now: Optional[datetime] = None) -> CacheSnapshot:
        now = now or datetime.utcnow()
        with self._lock:
            return CacheSnapshot(
                entries=len(self._entries),
                last_refreshed=self._last_refreshed,
                ttl_seconds=self.ttl_seconds,
                stale=self._is_stale(now),
            )


book_cache = BookIdentityCache(ttl_seconds=settings.BOOK_CACHE_TTL_SECONDS)


def get_book_cache() -> BookIdentityCache:
    return book_cache
