from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bookwatch.core.database import get_db
from bookwatch.schemas.comparison import ComparisonNotesUpdate, ComparisonRecordResponse
from bookwatch.services import ledger
from bookwatch.services.books import get_book_by_code

router = APIRouter()


@router.get("", response_model=list[ComparisonRecordResponse])
async def list_comparisons(
    book_code: Optional[str] = None,
    comparison_type: Optional[ledger.ComparisonType] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = Query(None, description="按备注模糊搜索"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """比对台账（新记录在前），可按书籍、类型、日期、备注筛选"""
    book_id = get_book_by_code(db, book_code).id if book_code else None
    return ledger.list_records(
        db,
        book_id=book_id,
        comparison_type=comparison_type.value if comparison_type else None,
        date_from=date_from,
        date_to=date_to,
        search_notes=search,
        limit=limit,
        offset=offset,
    )


@router.get("/{record_id}", response_model=ComparisonRecordResponse)
async def get_comparison(record_id: str, db: Session = Depends(get_db)):
    return ledger.get_record(db, record_id)


@router.patch("/{record_id}", response_model=ComparisonRecordResponse)
async def update_comparison_notes(
    record_id: str,
    request: ComparisonNotesUpdate,
    db: Session = Depends(get_db),
):
    """只允许修改备注"""
    return ledger.update_notes(db, record_id, request.notes)
