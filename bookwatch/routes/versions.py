from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookwatch.core.database import get_db
from bookwatch.core.locks import BookLockRegistry, get_book_locks
from bookwatch.schemas.version import BookVersionResponse, SetBaselineResponse
from bookwatch.services.books import get_book_by_code
from bookwatch.services import versions as version_service

router = APIRouter()


@router.get("/{code}/versions", response_model=list[BookVersionResponse])
async def list_versions(code: str, db: Session = Depends(get_db)):
    """获取书籍的全部版本（新版本在前）"""
    book = get_book_by_code(db, code)
    items = version_service.list_versions(db, book)
    return [
        BookVersionResponse.model_validate(version).model_copy(update={"snapshotCount": count})
        for version, count in items
    ]


@router.post("/{code}/versions/{version_id}/baseline", response_model=SetBaselineResponse)
async def set_baseline(
    code: str,
    version_id: str,
    db: Session = Depends(get_db),
    locks: BookLockRegistry = Depends(get_book_locks),
):
    """把指定版本设为基线，并用它的快照改写段落的基线文本"""
    book = get_book_by_code(db, code)
    change = version_service.set_baseline(db, book, version_id, locks)
    return SetBaselineResponse(
        bookId=book.id,
        baselineVersionId=change.version.id,
        baselineVersionNumber=change.version.versionNumber,
        previousVersionNumber=change.previous_version_number,
        paragraphsUpdated=change.paragraphs_updated,
        paragraphsUncovered=change.paragraphs_uncovered,
    )
