"""
测试种子书：把一本真实书籍复制为 <CODE>_TEST，并随机注入词级错误

用于在没有真实改版的情况下演练整条比对/展示链路。
"""
import logging
import random
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from bookwatch.core.config import settings
from bookwatch.core.database import atomic
from bookwatch.core.locks import BookLockRegistry
from bookwatch.models import Book, Chapter, Paragraph
from bookwatch.schemas.book import BookPayload, ChapterPayload
from bookwatch.schemas.seed import TestSeedResponse
from bookwatch.services.aligner import ChapterChange, ComparisonResult
from bookwatch.services.books import add_chapters, normalize_code, store_book
from bookwatch.services.counters import apply_counters
from bookwatch.services.ledger import ComparisonType, append_record
from bookwatch.services.reconciler import reconcile
from bookwatch.services.versions import SnapshotInput, VersionSource, create_version

logger = logging.getLogger(__name__)

TEST_SUFFIX = "_TEST"
MIN_WORDS = 5
MAX_ERRORS_PER_PARAGRAPH = 3

# 常见词的近似替换
WORD_SUBSTITUTIONS: dict[str, list[str]] = {
    "el": ["al", "él"],
    "la": ["las", "lo"],
    "de": ["del", "desde"],
    "en": ["un", "sin"],
    "que": ["qué", "quien"],
    "por": ["para", "pro"],
    "con": ["como", "sin"],
    "una": ["uno", "unas"],
    "su": ["sus", "tu"],
    "no": ["ni", "na"],
    "se": ["si", "sé"],
    "este": ["ese", "esta"],
    "era": ["esa", "será"],
    "pueblo": ["poblo", "puevlo"],
    "tierra": ["tiera", "teirra"],
    "señor": ["señór", "senor"],
    "hombre": ["ombre", "honbre"],
    "dios": ["díos", "dlos"],
}


def swap_letters(word: str, rng: random.Random) -> str:
    if len(word) < 3:
        return word
    pos = rng.randrange(len(word) - 1)
    chars = list(word)
    chars[pos], chars[pos + 1] = chars[pos + 1], chars[pos]
    return "".join(chars)


def substitute_word(word: str, rng: random.Random) -> str:
    options = WORD_SUBSTITUTIONS.get(word.lower())
    return rng.choice(options) if options else word


def drop_letter(word: str, rng: random.Random) -> str:
    if len(word) < 4:
        return word
    pos = rng.randrange(len(word))
    return word[:pos] + word[pos + 1:]


def double_letter(word: str, rng: random.Random) -> str:
    pos = rng.randrange(len(word))
    return word[:pos] + word[pos] + word[pos:]


def mangle_ending(word: str, rng: random.Random) -> str:
    if rng.random() > 0.5:
        return word.lower()
    return word + word[-1]


ERROR_INTRODUCERS: list[Callable[[str, random.Random], str]] = [
    swap_letters,
    substitute_word,
    drop_letter,
    double_letter,
    mangle_ending,
]


def introduce_errors(text: str, error_count: int, rng: random.Random) -> tuple[str, int]:
    """返回 (修改后的文本, 实际改动的词数)；少于 5 个词的段落不动"""
    words = text.split(" ")
    if len(words) < MIN_WORDS:
        return text, 0

    modified = list(words)
    touched: set[int] = set()
    for _ in range(error_count):
        candidates = [i for i in range(len(modified)) if i not in touched and len(modified[i]) >= 3]
        if not candidates:
            break
        index = rng.choice(candidates)
        introducer = rng.choice(ERROR_INTRODUCERS)
        modified[index] = introducer(modified[index], rng)
        touched.add(index)

    applied = sum(1 for before, after in zip(words, modified) if before != after)
    return " ".join(modified), applied


def plan_errors(total_paragraphs: int, error_count: int, rng: random.Random) -> dict[int, int]:
    """段落全局序号 -> 注入错误数（每段 1~3 个，总数不超过 error_count）"""
    if total_paragraphs <= 0 or error_count <= 0:
        return {}
    chosen = rng.sample(range(total_paragraphs), min(error_count, total_paragraphs))
    plan: dict[int, int] = {}
    remaining = error_count
    for index in chosen:
        if remaining <= 0:
            break
        count = min(rng.randint(1, MAX_ERRORS_PER_PARAGRAPH), remaining)
        plan[index] = count
        remaining -= count
    return plan


def _reseed_chapters(
    db: Session,
    book: Book,
    chapters: Sequence[ChapterPayload],
    now: datetime,
) -> list[Paragraph]:
    """
    重新生成已存在的测试书：段落按 refcode 就地更新，不删除任何行，旧版本的快照因此保持完整。

    已有段落先恢复为原文（作为一次变更记入历史），再以原文作为新的 baseText；
    来源中没有的章节/段落保持不变。返回来源中的全部段落，顺序与来源一致。
    """
    stored_chapters = {c.number: c for c in book.chapters}
    paragraphs: list[Paragraph] = []
    seen_numbers: set[int] = set()

    for incoming in chapters:
        if incoming.number in seen_numbers:
            logger.warning("书籍 %s 的章节 %s 重复出现，只保留第一次", book.code, incoming.number)
            continue
        seen_numbers.add(incoming.number)

        chapter = stored_chapters.get(incoming.number)
        if chapter is None:
            paragraphs.extend(add_chapters(db, book, [incoming]))
            continue

        stored = {p.refcode: p for p in chapter.paragraphs if p.refcode}
        next_number = max((p.paragraphNumber for p in chapter.paragraphs), default=0)
        for item in incoming.paragraphs:
            refcode = (item.refcode or "").strip() or None
            paragraph = stored.pop(refcode, None) if refcode else None
            if paragraph is None:
                next_number += 1
                paragraph = Paragraph(
                    chapterId=chapter.id,
                    paragraphNumber=next_number,
                    refcode=refcode,
                    baseText=item.content,
                    latestText=item.content,
                    hasChanged=False,
                    changeHistory=[],
                )
                db.add(paragraph)
            else:
                reconcile(paragraph, item.content, now=now)
                paragraph.baseText = item.content
            paragraphs.append(paragraph)

    db.flush()
    return paragraphs


def seed_test_book(
    db: Session,
    payload: BookPayload,
    locks: BookLockRegistry,
    *,
    error_count: Optional[int] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> TestSeedResponse:
    rng = rng or random.Random()
    error_count = settings.TEST_SEED_ERROR_COUNT if error_count is None else max(int(error_count), 0)
    source_code = normalize_code(payload.code)
    code = f"{source_code}{TEST_SUFFIX}"
    title = f"{payload.title} (TEST)"
    now = now or datetime.utcnow()

    existing = db.query(Book).filter(Book.code == code).first()
    guard = locks.hold(existing.id) if existing else nullcontext()

    with guard:
        with atomic(db):
            if existing:
                logger.info("测试书 %s 已存在，按 refcode 就地更新段落", code)
                existing.title = title
                existing.providerCode = source_code
                book = existing
                paragraphs = _reseed_chapters(db, book, payload.chapters, now)
            else:
                book, paragraphs = store_book(
                    db,
                    payload,
                    code=code,
                    title=title,
                    provider_code=source_code,
                    is_test_seed=True,
                    now=now,
                )

            originals = [SnapshotInput(paragraph_id=p.id, text=p.baseText) for p in paragraphs]
            chapter_numbers = dict(db.query(Chapter.id, Chapter.number).filter(Chapter.bookId == book.id).all())

            plan = plan_errors(len(paragraphs), error_count, rng)
            per_chapter: dict[str, int] = {}
            affected = 0
            for index, planned in sorted(plan.items()):
                paragraph = paragraphs[index]
                modified, applied = introduce_errors(paragraph.baseText, planned, rng)
                if applied == 0:
                    continue
                if reconcile(paragraph, modified, now=now).changed:
                    affected += 1
                    per_chapter[paragraph.chapterId] = per_chapter.get(paragraph.chapterId, 0) + applied

            result = ComparisonResult(book_id=book.id)
            for chapter_id, count in sorted(per_chapter.items(), key=lambda item: chapter_numbers[item[0]]):
                result.chapters.append(
                    ChapterChange(chapter_id=chapter_id, chapter_number=chapter_numbers[chapter_id], change_count=count)
                )
                result.total_changes += count
            result.changed_paragraph_count = affected

            create_version(
                db,
                book=book,
                source_type=VersionSource.TEST_SEED,
                is_baseline=True,
                snapshots=originals,
                notes="测试种子书原文",
                now=now,
            )
            apply_counters(db, book, result, now=now)
            append_record(
                db,
                book=book,
                comparison_type=ComparisonType.TEST_IMPORT,
                total_changes=result.total_changes,
                changed_paragraphs=affected,
                chapters_affected=[c.as_dict() for c in result.chapters],
                notes=f"测试书：注入 {result.total_changes} 处错误，涉及 {affected} 个段落",
                now=now,
            )
            book_id = book.id
            total_chapters = len(chapter_numbers)

    logger.info("测试书 %s 生成完成: %s 处错误，%s 个段落", code, result.total_changes, affected)
    return TestSeedResponse(
        success=True,
        bookId=book_id,
        code=code,
        title=title,
        totalChapters=total_chapters,
        totalParagraphs=len(paragraphs),
        totalErrors=result.total_changes,
        affectedParagraphs=affected,
    )
