"""
书籍导入、查询、统计与删除
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from bookwatch.core.config import settings
from bookwatch.models import Book, Chapter, Paragraph
from bookwatch.schemas.book import BookPayload, BookResponse, ChapterPayload, MonitoringStatsResponse
from bookwatch.schemas.paragraph import (
    ChapterDetailResponse,
    DiffSegmentResponse,
    ParagraphDiffResponse,
    ParagraphResponse,
)
from bookwatch.services.ledger import ComparisonType, append_record
from bookwatch.services.reconciler import load_history
from bookwatch.services.versions import SnapshotInput, VersionSource, create_version
from bookwatch.services.word_diff import count_words, diff_words, texts_differ

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def get_book_by_code(db: Session, code: str) -> Book:
    book = db.query(Book).filter(Book.code == normalize_code(code)).first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="书籍不存在")
    return book


def ensure_code_available(db: Session, code: str) -> str:
    code = normalize_code(code)
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="书籍代码不能为空")
    if db.query(Book.id).filter(Book.code == code).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"书籍 {code} 已存在")
    return code


def list_books(db: Session) -> list[Book]:
    return db.query(Book).order_by(Book.title.asc()).all()


def store_book(
    db: Session,
    payload: BookPayload,
    *,
    code: str,
    title: Optional[str] = None,
    language: Optional[str] = None,
    provider_code: Optional[str] = None,
    is_test_seed: bool = False,
    now: Optional[datetime] = None,
) -> tuple[Book, list[Paragraph]]:
    """写入书籍/章节/段落（base = latest = 原文），返回书籍与全部段落；不提交"""
    now = now or datetime.utcnow()
    book = Book(
        title=(title or payload.title or code).strip(),
        code=code,
        providerCode=provider_code,
        language=language or settings.PROVIDER_LANGUAGE,
        isTestSeed=is_test_seed,
        totalChanges=0,
        lastCheckDate=now,
        importedAt=now,
    )
    db.add(book)
    db.flush()
    return book, add_chapters(db, book, payload.chapters)


def add_chapters(db: Session, book: Book, chapters: Sequence[ChapterPayload]) -> list[Paragraph]:
    code = book.code
    paragraphs: list[Paragraph] = []
    seen_numbers: set[int] = set()
    for incoming in chapters:
        if incoming.number in seen_numbers:
            logger.warning("书籍 %s 的章节 %s 重复出现，只保留第一次", code, incoming.number)
            continue
        seen_numbers.add(incoming.number)

        chapter = Chapter(
            bookId=book.id,
            number=incoming.number,
            title=incoming.title or f"Capítulo {incoming.number}",
            changeCount=0,
        )
        db.add(chapter)
        db.flush()

        for position, item in enumerate(incoming.paragraphs, start=1):
            refcode = (item.refcode or "").strip() or None
            if refcode is None:
                logger.warning("书籍 %s 章节 %s 第 %s 段缺少 refcode，后续复查无法匹配", code, incoming.number, position)
            paragraph = Paragraph(
                chapterId=chapter.id,
                paragraphNumber=position,
                refcode=refcode,
                baseText=item.content,
                latestText=item.content,
                hasChanged=False,
                changeHistory=[],
            )
            db.add(paragraph)
            paragraphs.append(paragraph)
    db.flush()
    return paragraphs


def import_book(
    db: Session,
    payload: BookPayload,
    *,
    code: Optional[str] = None,
    language: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Book:
    """导入新书：版本 1 作为基线，台账记一条 initial_import"""
    code = ensure_code_available(db, code or payload.code)
    if not payload.chapters:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="书籍没有任何章节内容")

    now = now or datetime.utcnow()
    try:
        book, paragraphs = store_book(
            db, payload, code=code, language=language, provider_code=code, now=now
        )
        create_version(
            db,
            book=book,
            source_type=VersionSource.INITIAL_IMPORT,
            is_baseline=True,
            snapshots=[SnapshotInput(paragraph_id=p.id, text=p.baseText) for p in paragraphs],
            notes="初始导入",
            now=now,
        )
        append_record(db, book=book, comparison_type=ComparisonType.INITIAL_IMPORT, notes="初始导入", now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(book)
    logger.info("书籍 %s 导入完成: %s 章, %s 段", code, len(book.chapters), len(paragraphs))
    return book


def delete_book(db: Session, code: str, confirm: str) -> str:
    book = get_book_by_code(db, code)
    code = book.code
    if normalize_code(confirm) != code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="确认代码与书籍代码不一致，已取消删除",
        )
    db.delete(book)
    db.commit()
    logger.info("书籍 %s 及其全部章节、段落、版本、台账已删除", code)
    return code


def monitoring_stats(db: Session, now: Optional[datetime] = None) -> MonitoringStatsResponse:
    now = now or datetime.utcnow()
    stale_before = now - timedelta(days=settings.STALE_REVIEW_DAYS)

    total_books = db.query(func.count(Book.id)).scalar() or 0
    books_with_changes = db.query(func.count(Book.id)).filter(Book.totalChanges > 0).scalar() or 0
    books_needing_review = (
        db.query(func.count(Book.id))
        .filter(or_(Book.lastCheckDate.is_(None), Book.lastCheckDate < stale_before))
        .scalar()
    ) or 0
    total_changes = db.query(func.coalesce(func.sum(Book.totalChanges), 0)).scalar() or 0
    last_reviewed = (
        db.query(Book)
        .filter(Book.lastCheckDate.isnot(None))
        .order_by(Book.lastCheckDate.desc())
        .first()
    )

    return MonitoringStatsResponse(
        totalBooks=int(total_books),
        booksWithChanges=int(books_with_changes),
        booksNeedingReview=int(books_needing_review),
        totalChanges=int(total_changes),
        lastReviewedBook=BookResponse.model_validate(last_reviewed) if last_reviewed else None,
    )


def _diff_response(old_text: str, new_text: str) -> list[DiffSegmentResponse]:
    return [DiffSegmentResponse(kind=seg.kind, text=seg.text) for seg in diff_words(old_text, new_text)]


def paragraph_response(paragraph: Paragraph) -> ParagraphResponse:
    diff = None
    if texts_differ(paragraph.baseText, paragraph.latestText):
        diff = _diff_response(paragraph.baseText, paragraph.latestText)
    return ParagraphResponse(
        id=paragraph.id,
        chapterId=paragraph.chapterId,
        paragraphNumber=paragraph.paragraphNumber,
        refcode=paragraph.refcode,
        baseText=paragraph.baseText,
        latestText=paragraph.latestText,
        hasChanged=paragraph.hasChanged,
        changeHistory=load_history(paragraph),
        updatedAt=paragraph.updatedAt,
        diff=diff,
    )


def get_chapter_detail(db: Session, book: Book, number: int) -> ChapterDetailResponse:
    chapter = db.query(Chapter).filter(Chapter.bookId == book.id, Chapter.number == number).first()
    if not chapter:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="章节不存在")
    return ChapterDetailResponse(
        id=chapter.id,
        bookId=chapter.bookId,
        number=chapter.number,
        title=chapter.title,
        changeCount=chapter.changeCount,
        paragraphs=[paragraph_response(p) for p in chapter.paragraphs],
    )


def get_paragraph(db: Session, book: Book, paragraph_id: str) -> Paragraph:
    paragraph = (
        db.query(Paragraph)
        .join(Chapter, Paragraph.chapterId == Chapter.id)
        .filter(Paragraph.id == paragraph_id, Chapter.bookId == book.id)
        .first()
    )
    if not paragraph:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="段落不存在")
    return paragraph


def get_paragraph_diff(db: Session, book: Book, paragraph_id: str) -> ParagraphDiffResponse:
    """基线文本 -> 最新文本 的词级差异"""
    paragraph = get_paragraph(db, book, paragraph_id)
    segments = diff_words(paragraph.baseText, paragraph.latestText)
    return ParagraphDiffResponse(
        paragraphId=paragraph.id,
        refcode=paragraph.refcode,
        oldText=paragraph.baseText,
        newText=paragraph.latestText,
        hasChanged=paragraph.hasChanged,
        insertedWords=count_words(segments, "insert"),
        deletedWords=count_words(segments, "delete"),
        segments=[DiffSegmentResponse(kind=seg.kind, text=seg.text) for seg in segments],
    )
