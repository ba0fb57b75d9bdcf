"""
手动导入历史版本（例如纸质版的扫描文本）

流程：切分段落 -> 结构比较 -> 相似度匹配建议 -> 人工确认代码 -> 校验 -> 写入版本
"""
import logging
import re
from datetime import datetime
from typing import Iterable, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from bookwatch.core.database import atomic
from bookwatch.core.locks import BookLockRegistry
from bookwatch.models import Book, Chapter, Paragraph
from bookwatch.schemas.manual_import import (
    MISSING_CODE,
    CodeAssignment,
    ManualImportRequest,
    ManualImportResult,
    MatchSuggestion,
    ParagraphMatch,
    StructuralComparison,
    ValidationIssue,
)
from bookwatch.services.ledger import ComparisonType, append_record
from bookwatch.services.versions import SnapshotInput, VersionSource, create_version, promote_to_baseline

logger = logging.getLogger(__name__)

REFCODE_RE = re.compile(r"^([A-Z]{2,5})\s(\d+)\.(\d+)$")
BEST_MATCH_THRESHOLD = 0.7
MAX_SUGGESTIONS = 5

_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_WHITESPACE_RE = re.compile(r"\s+")


def extract_paragraphs_from_text(content: str) -> list[str]:
    """按空行切分，去首尾空白，丢弃空段落"""
    parts = _BLANK_LINE_RE.split((content or "").replace("\r\n", "\n"))
    return [p.strip() for p in parts if p.strip()]


def parse_refcode(code: str) -> Optional[tuple[str, int, int]]:
    match = REFCODE_RE.match(code or "")
    if not match:
        return None
    return match.group(1), int(match.group(2)), int(match.group(3))


def _book_paragraphs(db: Session, book: Book, with_refcode: bool = False) -> list[Paragraph]:
    query = (
        db.query(Paragraph)
        .join(Chapter, Paragraph.chapterId == Chapter.id)
        .filter(Chapter.bookId == book.id)
    )
    if with_refcode:
        query = query.filter(Paragraph.refcode.isnot(None))
    return query.order_by(Chapter.number.asc(), Paragraph.paragraphNumber.asc()).all()


def compare_structure(db: Session, book: Book, uploaded_count: int) -> StructuralComparison:
    db_count = len(_book_paragraphs(db, book))
    if uploaded_count == db_count:
        return StructuralComparison(uploadedCount=uploaded_count, dbCount=db_count, match="exact")
    if uploaded_count > db_count:
        return StructuralComparison(
            uploadedCount=uploaded_count, dbCount=db_count, match="extra", extraCount=uploaded_count - db_count
        )
    return StructuralComparison(
        uploadedCount=uploaded_count, dbCount=db_count, match="missing", missingCount=db_count - uploaded_count
    )


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def normalize_for_match(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", (text or "").lower()).strip()


def similarity_ratio(a: str, b: str) -> float:
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1 - levenshtein_distance(a, b) / max_len


def find_paragraph_matches(db: Session, book: Book, texts: Iterable[str]) -> list[ParagraphMatch]:
    stored = _book_paragraphs(db, book, with_refcode=True)
    if not stored:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="该书籍没有可匹配的段落")

    candidates = [(p.refcode, normalize_for_match(p.baseText), p.baseText) for p in stored]
    matches: list[ParagraphMatch] = []
    for index, text in enumerate(texts):
        uploaded = normalize_for_match(text)
        scored = sorted(
            (
                MatchSuggestion(code=code, similarity=round(similarity_ratio(uploaded, normalized), 4), dbText=raw)
                for code, normalized, raw in candidates
            ),
            key=lambda s: s.similarity,
            reverse=True,
        )
        best = scored[0] if scored and scored[0].similarity > BEST_MATCH_THRESHOLD else None
        matches.append(ParagraphMatch(index=index, bestMatch=best, suggestions=scored[:MAX_SUGGESTIONS]))
    return matches


def validate_code_assignments(
    assignments: list[CodeAssignment],
    book_code: str,
    existing_codes: set[str],
) -> list[ValidationIssue]:
    """收集全部校验错误（不在第一个错误处停止）"""
    errors: list[ValidationIssue] = []
    seen: dict[str, int] = {}
    last: Optional[tuple[int, int]] = None
    previous_code: Optional[str] = None

    for position, assignment in enumerate(assignments):
        code = (assignment.assignedCode or "").strip()
        label = position + 1

        if assignment.status == "pending":
            errors.append(
                ValidationIssue(type="missing_required", message=f"第 {label} 段尚未分配代码", affectedIndex=position)
            )
            continue

        if code == MISSING_CODE:
            last = None
            previous_code = code
            continue

        parsed = parse_refcode(code)
        if parsed is None:
            errors.append(
                ValidationIssue(
                    type="format", message=f"第 {label} 段的代码格式无效: \"{code}\"", affectedIndex=position, affectedCode=code
                )
            )
            continue

        prefix, chapter_number, paragraph_number = parsed
        if prefix != book_code:
            errors.append(
                ValidationIssue(
                    type="format",
                    message=f"代码 \"{code}\" 不属于书籍 {book_code}",
                    affectedIndex=position,
                    affectedCode=code,
                )
            )
            continue

        if code not in existing_codes:
            errors.append(
                ValidationIssue(
                    type="non_existent",
                    message=f"代码 \"{code}\" 在数据库中不存在",
                    affectedIndex=position,
                    affectedCode=code,
                )
            )
            continue

        if code in seen:
            errors.append(
                ValidationIssue(
                    type="duplicate",
                    message=f"代码 \"{code}\" 重复（第 {seen[code] + 1} 段与第 {label} 段）",
                    affectedIndex=position,
                    affectedCode=code,
                )
            )
            continue
        seen[code] = position

        if last is not None and chapter_number == last[0] and paragraph_number != last[1] + 1:
            errors.append(
                ValidationIssue(
                    type="sequence",
                    message=(
                        f"顺序错误: \"{previous_code}\" 之后应为 {prefix} {last[0]}.{last[1] + 1}，"
                        f"实际为 \"{code}\""
                    ),
                    affectedIndex=position,
                    affectedCode=code,
                )
            )

        last = (chapter_number, paragraph_number)
        previous_code = code

    return errors


def import_manual_version(
    db: Session,
    book: Book,
    request: ManualImportRequest,
    locks: BookLockRegistry,
    now: Optional[datetime] = None,
) -> ManualImportResult:
    stored = _book_paragraphs(db, book, with_refcode=True)
    by_code: dict[str, Paragraph] = {}
    for paragraph in stored:
        by_code.setdefault(paragraph.refcode, paragraph)

    errors = validate_code_assignments(request.assignments, book.code, set(by_code))
    if errors:
        logger.warning("书籍 %s 手动导入校验失败: %s 个错误", book.code, len(errors))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "代码分配校验未通过",
                "errors": [e.model_dump() for e in errors],
            },
        )

    snapshots = [
        SnapshotInput(paragraph_id=by_code[a.assignedCode.strip()].id, text=a.text)
        for a in request.assignments
        if a.assignedCode.strip() != MISSING_CODE
    ]
    is_baseline = request.versionType == "physical_baseline"
    now = now or datetime.utcnow()

    with locks.hold(book.id):
        with atomic(db):
            version = create_version(
                db,
                book=book,
                source_type=VersionSource.MANUAL_HISTORICAL,
                is_baseline=False,
                snapshots=snapshots,
                edition_date=request.editionDate,
                notes=request.versionNotes,
                now=now,
            )
            if is_baseline:
                promote_to_baseline(db, book, version, now=now)
            append_record(
                db,
                book=book,
                comparison_type=ComparisonType.MANUAL_HISTORICAL,
                notes=f"手动导入版本 {version.versionNumber}，共 {len(snapshots)} 个段落快照",
                now=now,
            )
            version_id = version.id
            version_number = version.versionNumber

    logger.info("书籍 %s 手动导入版本 %s 完成（基线=%s）", book.code, version_number, is_baseline)
    return ManualImportResult(
        success=True,
        versionId=version_id,
        versionNumber=version_number,
        snapshotsCreated=len(snapshots),
        isBaseline=is_baseline,
    )
