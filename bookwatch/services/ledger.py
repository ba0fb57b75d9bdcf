"""比对台账：只追加；唯一允许修改的是备注"""
import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from bookwatch.models import Book, BookComparison

logger = logging.getLogger(__name__)


class ComparisonType(str, Enum):
    INITIAL_IMPORT = "initial_import"
    PERIODIC_RECHECK = "periodic_recheck"
    BASELINE_CHANGE = "baseline_change"
    MANUAL_HISTORICAL = "manual_historical"
    TEST_IMPORT = "test_import"


def append_record(
    db: Session,
    *,
    book: Book,
    comparison_type: ComparisonType,
    total_changes: int = 0,
    changed_paragraphs: int = 0,
    chapters_affected: Iterable[dict] = (),
    notes: str | None = None,
    now: datetime | None = None,
) -> BookComparison:
    # 只保留有变化的章节
    affected = [dict(item) for item in chapters_affected if int(item.get("change_count", 0)) > 0]
    record = BookComparison(
        bookId=book.id,
        comparisonDate=now or datetime.utcnow(),
        comparisonType=ComparisonType(comparison_type).value,
        totalChanges=int(total_changes),
        changedParagraphs=int(changed_paragraphs),
        chaptersAffected=affected,
        notes=notes,
    )
    db.add(record)
    db.flush()
    logger.info(
        "台账追加: book=%s type=%s changes=%s paragraphs=%s",
        book.code,
        record.comparisonType,
        record.totalChanges,
        record.changedParagraphs,
    )
    return record


def get_record(db: Session, record_id: str) -> BookComparison:
    record = db.query(BookComparison).filter(BookComparison.id == record_id).first()
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="比对记录不存在")
    return record


def update_notes(db: Session, record_id: str, notes: Optional[str]) -> BookComparison:
    record = get_record(db, record_id)
    record.notes = notes
    db.commit()
    db.refresh(record)
    return record


def list_records(
    db: Session,
    *,
    book_id: Optional[str] = None,
    comparison_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search_notes: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[BookComparison]:
    query = db.query(BookComparison)
    if book_id:
        query = query.filter(BookComparison.bookId == book_id)
    if comparison_type:
        query = query.filter(BookComparison.comparisonType == comparison_type)
    if date_from:
        query = query.filter(BookComparison.comparisonDate >= date_from)
    if date_to:
        query = query.filter(BookComparison.comparisonDate <= date_to)
    if search_notes:
        query = query.filter(BookComparison.notes.ilike(f"%{search_notes.strip()}%"))
    return (
        query.order_by(BookComparison.comparisonDate.desc(), BookComparison.createdAt.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
