"""提供方书目维护；每次写入后让书目缓存失效"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from bookwatch.core.book_cache import BookIdentityCache
from bookwatch.models import BookCatalogEntry
from bookwatch.schemas.catalog import CatalogEntryUpsert, CatalogSyncResponse

logger = logging.getLogger(__name__)


def list_entries(db: Session, active_only: bool = False) -> list[BookCatalogEntry]:
    query = db.query(BookCatalogEntry)
    if active_only:
        query = query.filter(BookCatalogEntry.isActive.is_(True))
    return query.order_by(BookCatalogEntry.bookCode.asc()).all()


def sync_entries(
    db: Session,
    entries: Iterable[CatalogEntryUpsert],
    cache: BookIdentityCache,
    now: Optional[datetime] = None,
) -> CatalogSyncResponse:
    """按 bookCode 插入或更新书目条目"""
    now = now or datetime.utcnow()
    existing = {row.bookCode: row for row in db.query(BookCatalogEntry).all()}

    total = inserted = updated = 0
    for item in entries:
        code = item.bookCode.strip().upper()
        if not code:
            continue
        total += 1
        row = existing.get(code)
        if row is None:
            row = BookCatalogEntry(
                bookCode=code,
                providerBookId=item.providerBookId,
                title=item.title.strip(),
                language=item.language,
                isActive=item.isActive,
                lastValidated=now,
            )
            db.add(row)
            existing[code] = row
            inserted += 1
        else:
            row.providerBookId = item.providerBookId
            row.title = item.title.strip()
            row.language = item.language
            row.isActive = item.isActive
            row.lastValidated = now
            updated += 1

    db.commit()
    cache.invalidate()
    logger.info("书目同步完成: 共 %s 条，新增 %s，更新 %s", total, inserted, updated)
    return CatalogSyncResponse(totalFound=total, inserted=inserted, updated=updated)


def toggle_entry(db: Session, book_code: str, is_active: bool, cache: BookIdentityCache) -> BookCatalogEntry:
    row = db.query(BookCatalogEntry).filter(BookCatalogEntry.bookCode == book_code.strip().upper()).first()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="书目条目不存在")
    row.isActive = is_active
    db.commit()
    db.refresh(row)
    cache.invalidate()
    return row
