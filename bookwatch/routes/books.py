from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bookwatch.core.database import get_db
from bookwatch.core.locks import BookLockRegistry, get_book_locks
from bookwatch.schemas.book import (
    BookDeleteResponse,
    BookDetailResponse,
    BookImportRequest,
    BookRecheckRequest,
    BookResponse,
    MonitoringStatsResponse,
)
from bookwatch.schemas.comparison import RecheckResponse
from bookwatch.schemas.paragraph import ChangeHistoryEntry, ChapterDetailResponse, ParagraphDiffResponse
from bookwatch.services import books as book_service
from bookwatch.services.comparison import fetch_and_recheck, run_recheck
from bookwatch.services.provider import ProviderClient, get_book_source
from bookwatch.services.reconciler import load_history

router = APIRouter()


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def import_book(
    request: BookImportRequest,
    db: Session = Depends(get_db),
    source: ProviderClient = Depends(get_book_source),
):
    """导入新书：请求里带了整本书内容就直接用，否则从内容提供方抓取"""
    payload = request.book
    if payload is None:
        # 先查重，避免无谓的远程抓取
        book_service.ensure_code_available(db, request.code)
        payload = await source.fetch_book(request.code, language=request.language)
    return book_service.import_book(db, payload, code=request.code, language=request.language)


@router.get("", response_model=list[BookResponse])
async def list_books(db: Session = Depends(get_db)):
    """获取全部书籍（按标题排序）"""
    return book_service.list_books(db)


@router.get("/stats", response_model=MonitoringStatsResponse)
async def get_monitoring_stats(db: Session = Depends(get_db)):
    """监控概览：书籍数、有变化的书、待复查的书、累计变化数"""
    return book_service.monitoring_stats(db)


@router.get("/{code}", response_model=BookDetailResponse)
async def get_book(code: str, db: Session = Depends(get_db)):
    return book_service.get_book_by_code(db, code)


@router.delete("/{code}", response_model=BookDeleteResponse)
async def delete_book(
    code: str,
    confirm: str = Query(..., description="必须与书籍代码一致"),
    db: Session = Depends(get_db),
):
    """删除书籍及其全部章节、段落、版本与台账（不可恢复）"""
    deleted_code = book_service.delete_book(db, code, confirm)
    return BookDeleteResponse(code=deleted_code, deleted=True)


@router.post("/{code}/recheck", response_model=RecheckResponse)
async def recheck_book(
    code: str,
    request: Optional[BookRecheckRequest] = None,
    db: Session = Depends(get_db),
    source: ProviderClient = Depends(get_book_source),
    locks: BookLockRegistry = Depends(get_book_locks),
):
    """复查：与最新内容对齐并记录变化；同一本书同时只允许一个复查"""
    book = book_service.get_book_by_code(db, code)
    if request is not None and request.book is not None:
        outcome = run_recheck(db, book, request.book, locks)
    else:
        outcome = await fetch_and_recheck(db, book, source, locks)
    return outcome.to_response()


@router.get("/{code}/chapters/{number}", response_model=ChapterDetailResponse)
async def get_chapter(code: str, number: int, db: Session = Depends(get_db)):
    """章节详情：段落按序号排列，有变化的段落附带 基线 -> 最新 的差异"""
    book = book_service.get_book_by_code(db, code)
    return book_service.get_chapter_detail(db, book, number)


@router.get("/{code}/paragraphs/{paragraph_id}/diff", response_model=ParagraphDiffResponse)
async def get_paragraph_diff(code: str, paragraph_id: str, db: Session = Depends(get_db)):
    book = book_service.get_book_by_code(db, code)
    return book_service.get_paragraph_diff(db, book, paragraph_id)


@router.get("/{code}/paragraphs/{paragraph_id}/history", response_model=list[ChangeHistoryEntry])
async def get_paragraph_history(code: str, paragraph_id: str, db: Session = Depends(get_db)):
    """段落变更历史（按发生顺序）"""
    book = book_service.get_book_by_code(db, code)
    paragraph = book_service.get_paragraph(db, book, paragraph_id)
    return load_history(paragraph)
