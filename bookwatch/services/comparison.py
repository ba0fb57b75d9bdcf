"""
复查编排：加锁 -> 锁书籍行 -> 结构对齐 -> 累加计数器 -> （有变化时）追加版本 -> 台账 -> 提交
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from bookwatch.core.database import atomic
from bookwatch.core.locks import BookLockRegistry
from bookwatch.models import Book, BookComparison, BookVersion
from bookwatch.schemas.book import BookPayload
from bookwatch.schemas.comparison import ChapterAffected, RecheckResponse
from bookwatch.services.aligner import ComparisonResult, align
from bookwatch.services.counters import apply_counters
from bookwatch.services.ledger import ComparisonType, append_record
from bookwatch.services.provider import ProviderClient
from bookwatch.services.versions import SnapshotInput, VersionSource, create_version

logger = logging.getLogger(__name__)


@dataclass
class ComparisonOutcome:
    book: Book
    result: ComparisonResult
    record: BookComparison
    version: Optional[BookVersion] = None

    def to_response(self) -> RecheckResponse:
        return RecheckResponse(
            bookId=self.book.id,
            bookCode=self.book.code,
            totalChanges=self.result.total_changes,
            changedParagraphs=self.result.changed_paragraph_count,
            newParagraphs=self.result.new_paragraphs,
            skippedChapters=self.result.skipped_chapters,
            skippedParagraphs=self.result.skipped_paragraphs,
            failedItems=self.result.failed_items,
            partial=self.result.partial,
            chapters=[ChapterAffected(**c.as_dict()) for c in self.result.chapters],
            versionNumber=self.version.versionNumber if self.version else None,
            comparisonId=self.record.id,
        )


def _lock_book_row(db: Session, book_id: str) -> Book:
    # SQLite 会忽略 FOR UPDATE；其他数据库上可防止跨进程并发写同一本书
    book = db.query(Book).filter(Book.id == book_id).with_for_update().first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="书籍不存在")
    return book


def run_recheck(
    db: Session,
    book: Book,
    incoming: BookPayload,
    locks: BookLockRegistry,
    now: Optional[datetime] = None,
) -> ComparisonOutcome:
    if not incoming.chapters:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="新版本没有任何章节内容")
    if incoming.code and incoming.code.strip().upper() != (book.providerCode or book.code):
        logger.warning("复查书籍 %s 时收到的书籍代码为 %s，仍按 %s 处理", book.code, incoming.code, book.code)

    now = now or datetime.utcnow()
    with locks.hold(book.id):
        with atomic(db):
            book = _lock_book_row(db, book.id)
            result = align(db, book, incoming.chapters, now=now)
            apply_counters(db, book, result, now=now)

            version = None
            if result.changed_paragraph_count > 0:
                version = create_version(
                    db,
                    book=book,
                    source_type=VersionSource.PERIODIC_RECHECK,
                    is_baseline=False,
                    snapshots=[
                        SnapshotInput(paragraph_id=item.paragraph_id, text=item.text)
                        for item in result.changed_paragraphs
                    ],
                    notes=f"复查发现 {result.changed_paragraph_count} 个段落变化",
                    now=now,
                )

            notes = None
            if result.partial:
                notes = f"部分完成：{result.failed_items} 个段落写入失败"
            record = append_record(
                db,
                book=book,
                comparison_type=ComparisonType.PERIODIC_RECHECK,
                total_changes=result.total_changes,
                changed_paragraphs=result.changed_paragraph_count,
                chapters_affected=[c.as_dict() for c in result.chapters],
                notes=notes,
                now=now,
            )

    db.refresh(book)
    logger.info(
        "书籍 %s 复查完成: 变化 %s 段（新版本 %s）",
        book.code,
        result.changed_paragraph_count,
        version.versionNumber if version else "无",
    )
    return ComparisonOutcome(book=book, result=result, record=record, version=version)


async def fetch_and_recheck(
    db: Session,
    book: Book,
    source: ProviderClient,
    locks: BookLockRegistry,
) -> ComparisonOutcome:
    if locks.is_locked(book.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="该书籍已有比对正在进行，请稍后再试")
    incoming = await source.fetch_book(book.providerCode or book.code, language=book.language)
    return run_recheck(db, book, incoming, locks)
