from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookwatch.core.database import get_db
from bookwatch.core.locks import BookLockRegistry, get_book_locks
from bookwatch.models import Chapter, Paragraph
from bookwatch.schemas.manual_import import (
    ExtractParagraphsRequest,
    ExtractParagraphsResponse,
    ManualImportRequest,
    ManualImportResult,
    MatchRequest,
    MatchResponse,
    StructuralComparison,
    StructureRequest,
    ValidateAssignmentsRequest,
    ValidateAssignmentsResponse,
)
from bookwatch.services import manual_import as manual_service
from bookwatch.services.books import get_book_by_code

router = APIRouter()


@router.post("/extract", response_model=ExtractParagraphsResponse)
async def extract_paragraphs(request: ExtractParagraphsRequest):
    """把上传的纯文本按空行切分为段落"""
    paragraphs = manual_service.extract_paragraphs_from_text(request.content)
    return ExtractParagraphsResponse(paragraphs=paragraphs, count=len(paragraphs))


@router.post("/{code}/structure", response_model=StructuralComparison)
async def compare_structure(code: str, request: StructureRequest, db: Session = Depends(get_db)):
    book = get_book_by_code(db, code)
    return manual_service.compare_structure(db, book, len(request.paragraphs))


@router.post("/{code}/matches", response_model=MatchResponse)
async def find_matches(code: str, request: MatchRequest, db: Session = Depends(get_db)):
    """为每个上传段落给出最相似的已存段落代码"""
    book = get_book_by_code(db, code)
    return MatchResponse(matches=manual_service.find_paragraph_matches(db, book, request.paragraphs))


@router.post("/{code}/validate", response_model=ValidateAssignmentsResponse)
async def validate_assignments(code: str, request: ValidateAssignmentsRequest, db: Session = Depends(get_db)):
    book = get_book_by_code(db, code)
    existing_codes = {
        refcode
        for (refcode,) in db.query(Paragraph.refcode)
        .join(Chapter, Paragraph.chapterId == Chapter.id)
        .filter(Chapter.bookId == book.id, Paragraph.refcode.isnot(None))
        .all()
    }
    errors = manual_service.validate_code_assignments(request.assignments, book.code, existing_codes)
    return ValidateAssignmentsResponse(valid=not errors, errors=errors)


@router.post("/{code}/import", response_model=ManualImportResult)
async def import_manual_version(
    code: str,
    request: ManualImportRequest,
    db: Session = Depends(get_db),
    locks: BookLockRegistry = Depends(get_book_locks),
):
    """写入手动导入的历史版本；physical_baseline 会同时成为新基线"""
    book = get_book_by_code(db, code)
    return manual_service.import_manual_version(db, book, request, locks)
