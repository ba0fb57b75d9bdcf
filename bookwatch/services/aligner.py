"""
结构对齐：把新抓取的章节/段落与库中已存的版本对齐

- 章节按 number 匹配；库中不存在的章节直接跳过（复查时不自动建章节）
- 段落只按 refcode 匹配，paragraphNumber 仅供展示，插入/删除会让位置漂移但 refcode 不变
- 库中有、新版本没有的段落保持原样（不删除、不标记）
- 单个段落写入失败只记日志并回滚到保存点，其余工作继续
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookwatch.models import Book, Chapter, Paragraph
from bookwatch.schemas.book import ChapterPayload
from bookwatch.services.reconciler import reconcile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChapterChange:
    chapter_id: str
    chapter_number: int
    change_count: int

    def as_dict(self) -> dict:
        return {
            "chapter_id": self.chapter_id,
            "chapter_number": self.chapter_number,
            "change_count": self.change_count,
        }


@dataclass
class ChangedParagraph:
    paragraph_id: str
    text: str


@dataclass
class ComparisonResult:
    book_id: str
    total_changes: int = 0
    changed_paragraph_count: int = 0
    chapters: list[ChapterChange] = field(default_factory=list)
    changed_paragraphs: list[ChangedParagraph] = field(default_factory=list)
    new_paragraphs: int = 0
    skipped_chapters: int = 0
    skipped_paragraphs: int = 0
    orphaned_paragraphs: int = 0
    failed_items: int = 0

    @property
    def partial(self) -> bool:
        return self.failed_items > 0


def _index_by_refcode(paragraphs: Sequence[Paragraph]) -> dict[str, Paragraph]:
    index: dict[str, Paragraph] = {}
    for paragraph in paragraphs:
        if not paragraph.refcode:
            continue
        if paragraph.refcode in index:
            logger.warning("章节 %s 中存在重复的 refcode %s，使用第一条", paragraph.chapterId, paragraph.refcode)
            continue
        index[paragraph.refcode] = paragraph
    return index


def _align_chapter(
    db: Session,
    chapter: Chapter,
    incoming: ChapterPayload,
    result: ComparisonResult,
    now: datetime,
) -> int:
    stored_by_refcode = _index_by_refcode(chapter.paragraphs)
    seen: set[str] = set()
    changes_in_chapter = 0

    for position, incoming_paragraph in enumerate(incoming.paragraphs, start=1):
        refcode = (incoming_paragraph.refcode or "").strip()
        if not refcode:
            logger.warning("章节 %s 第 %s 段缺少 refcode，无法匹配，跳过", chapter.number, position)
            result.skipped_paragraphs += 1
            continue
        if refcode in seen:
            logger.warning("章节 %s 中 refcode %s 重复出现，只处理第一次", chapter.number, refcode)
            result.skipped_paragraphs += 1
            continue
        seen.add(refcode)

        stored = stored_by_refcode.get(refcode)
        try:
            with db.begin_nested():
                if stored is None:
                    db.add(
                        Paragraph(
                            chapterId=chapter.id,
                            paragraphNumber=position,
                            refcode=refcode,
                            baseText=incoming_paragraph.content,
                            latestText=incoming_paragraph.content,
                            hasChanged=False,
                            changeHistory=[],
                        )
                    )
                    db.flush()
                    result.new_paragraphs += 1
                    logger.info("新增段落 %s（章节 %s）", refcode, chapter.number)
                    continue

                outcome = reconcile(stored, incoming_paragraph.content, now=now)
                if outcome.changed:
                    db.flush()
                    changes_in_chapter += 1
                    result.changed_paragraphs.append(
                        ChangedParagraph(paragraph_id=stored.id, text=incoming_paragraph.content)
                    )
        except SQLAlchemyError:
            logger.exception("段落 %s 写入失败，已跳过", refcode)
            result.failed_items += 1

    orphans = [code for code in stored_by_refcode if code not in seen]
    if orphans:
        result.orphaned_paragraphs += len(orphans)
        logger.info("章节 %s 有 %s 个段落未出现在新版本中，保持不变", chapter.number, len(orphans))

    return changes_in_chapter


def align(
    db: Session,
    book: Book,
    incoming_chapters: Sequence[ChapterPayload],
    now: Optional[datetime] = None,
) -> ComparisonResult:
    """对齐整本书，返回本次运行的统计；计数器与台账由调用方处理"""
    now = now or datetime.utcnow()
    result = ComparisonResult(book_id=book.id)

    stored_chapters = {c.number: c for c in db.query(Chapter).filter(Chapter.bookId == book.id).all()}

    for incoming in incoming_chapters:
        chapter = stored_chapters.get(incoming.number)
        if chapter is None:
            logger.warning("书籍 %s 中不存在章节 %s，跳过", book.code, incoming.number)
            result.skipped_chapters += 1
            continue

        changes = _align_chapter(db, chapter, incoming, result, now)
        if changes > 0:
            result.total_changes += changes
            result.changed_paragraph_count += changes
            result.chapters.append(
                ChapterChange(chapter_id=chapter.id, chapter_number=chapter.number, change_count=changes)
            )

    logger.info(
        "书籍 %s 对齐完成: 变化 %s, 新增 %s, 跳过章节 %s, 跳过段落 %s, 失败 %s",
        book.code,
        result.total_changes,
        result.new_paragraphs,
        result.skipped_chapters,
        result.skipped_paragraphs,
        result.failed_items,
    )
    return result
