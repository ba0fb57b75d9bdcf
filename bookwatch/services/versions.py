"""
书籍版本与基线管理

- 版本只追加，版本号按书递增
- 任意时刻每本书最多一个基线版本
- 切换基线 = 取消旧基线 + 设置新基线 + 用新基线的快照改写段落 baseText + 台账记一笔，
  全部在同一事务内完成，任何一步失败都整体回滚
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookwatch.core.database import atomic
from bookwatch.core.locks import BookLockRegistry
from bookwatch.models import Book, BookVersion, Chapter, Paragraph, VersionSnapshot
from bookwatch.services.ledger import ComparisonType, append_record

logger = logging.getLogger(__name__)


class VersionSource(str, Enum):
    INITIAL_IMPORT = "initial_import"
    PERIODIC_RECHECK = "periodic_recheck"
    MANUAL_HISTORICAL = "manual_historical"
    TEST_SEED = "test_seed"


@dataclass(frozen=True)
class SnapshotInput:
    paragraph_id: str
    text: str


@dataclass(frozen=True)
class BaselineChange:
    version: BookVersion
    previous_version_number: Optional[int]
    paragraphs_updated: int
    paragraphs_uncovered: int


def next_version_number(db: Session, book_id: str) -> int:
    current_max = db.query(func.max(BookVersion.versionNumber)).filter(BookVersion.bookId == book_id).scalar()
    return (current_max or 0) + 1


def current_baseline(db: Session, book_id: str) -> Optional[BookVersion]:
    return (
        db.query(BookVersion)
        .filter(BookVersion.bookId == book_id, BookVersion.isBaseline.is_(True))
        .order_by(BookVersion.versionNumber.desc())
        .first()
    )


def _unset_baselines(db: Session, book_id: str, keep_id: Optional[str] = None) -> Optional[int]:
    previous_number = None
    rows = db.query(BookVersion).filter(BookVersion.bookId == book_id, BookVersion.isBaseline.is_(True)).all()
    for row in rows:
        if row.id == keep_id:
            continue
        previous_number = row.versionNumber
        row.isBaseline = False
    db.flush()
    return previous_number


def create_version(
    db: Session,
    *,
    book: Book,
    source_type: VersionSource,
    is_baseline: bool = False,
    snapshots: Iterable[SnapshotInput] = (),
    edition_date: Optional[date] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BookVersion:
    """追加一个版本及其快照（不提交，由调用方控制事务）"""
    if is_baseline:
        _unset_baselines(db, book.id)

    version = BookVersion(
        bookId=book.id,
        versionNumber=next_version_number(db, book.id),
        sourceType=VersionSource(source_type).value,
        isBaseline=is_baseline,
        editionDate=edition_date,
        notes=notes,
        importDate=now or datetime.utcnow(),
    )
    db.add(version)
    db.flush()

    rows = [
        VersionSnapshot(versionId=version.id, paragraphId=item.paragraph_id, paragraphText=item.text)
        for item in snapshots
    ]
    if rows:
        db.add_all(rows)
        db.flush()

    logger.info(
        "书籍 %s 新增版本 %s（%s，基线=%s，快照 %s 条）",
        book.code,
        version.versionNumber,
        version.sourceType,
        is_baseline,
        len(rows),
    )
    return version


def promote_to_baseline(
    db: Session,
    book: Book,
    version: BookVersion,
    now: Optional[datetime] = None,
) -> BaselineChange:
    """切换基线的各个步骤（不提交，由调用方放进同一事务）"""
    if version.isBaseline:
        logger.info("书籍 %s 的版本 %s 已是基线，无需切换", book.code, version.versionNumber)
        return BaselineChange(
            version=version,
            previous_version_number=version.versionNumber,
            paragraphs_updated=0,
            paragraphs_uncovered=0,
        )

    previous_number = _unset_baselines(db, book.id, keep_id=version.id)
    version.isBaseline = True
    db.flush()

    snapshots = db.query(VersionSnapshot).filter(VersionSnapshot.versionId == version.id).all()
    covered: set[str] = set()
    for snapshot in snapshots:
        paragraph = snapshot.paragraph
        paragraph.baseText = snapshot.paragraphText
        covered.add(paragraph.id)
    db.flush()

    total_paragraphs = (
        db.query(func.count(Paragraph.id))
        .join(Chapter, Paragraph.chapterId == Chapter.id)
        .filter(Chapter.bookId == book.id)
        .scalar()
    ) or 0
    uncovered = max(int(total_paragraphs) - len(covered), 0)
    if uncovered:
        # 快照未覆盖的段落保留原 baseText
        logger.warning(
            "书籍 %s 的新基线版本 %s 未覆盖 %s 个段落，这些段落保留原有基线文本",
            book.code,
            version.versionNumber,
            uncovered,
        )

    from_label = f"版本 {previous_number}" if previous_number is not None else "无"
    append_record(
        db,
        book=book,
        comparison_type=ComparisonType.BASELINE_CHANGE,
        notes=f"基线由 {from_label} 切换为版本 {version.versionNumber}",
        now=now,
    )
    return BaselineChange(
        version=version,
        previous_version_number=previous_number,
        paragraphs_updated=len(covered),
        paragraphs_uncovered=uncovered,
    )


def get_version(db: Session, book: Book, version_id: str) -> BookVersion:
    version = db.query(BookVersion).filter(BookVersion.id == version_id).first()
    if not version:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="版本不存在")
    if version.bookId != book.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="该版本不属于此书籍")
    return version


def set_baseline(db: Session, book: Book, version_id: str, locks: BookLockRegistry) -> BaselineChange:
    version = get_version(db, book, version_id)

    with locks.hold(book.id):
        try:
            with atomic(db):
                change = promote_to_baseline(db, book, version)
        except SQLAlchemyError as exc:
            logger.exception("书籍 %s 切换基线到版本 %s 失败，已回滚", book.code, version_id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="基线切换失败，所有修改已回滚",
            ) from exc

    db.refresh(change.version)
    logger.info("书籍 %s 基线已切换为版本 %s", book.code, change.version.versionNumber)
    return change


def list_versions(db: Session, book: Book) -> list[tuple[BookVersion, int]]:
    """返回 (版本, 快照数)，按版本号倒序"""
    counts = dict(
        db.query(VersionSnapshot.versionId, func.count(VersionSnapshot.id))
        .join(BookVersion, VersionSnapshot.versionId == BookVersion.id)
        .filter(BookVersion.bookId == book.id)
        .group_by(VersionSnapshot.versionId)
        .all()
    )
    versions = (
        db.query(BookVersion)
        .filter(BookVersion.bookId == book.id)
        .order_by(BookVersion.versionNumber.desc())
        .all()
    )
    return [(version, int(counts.get(version.id, 0))) for version in versions]
