import random

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from bookwatch.core.database import get_db
from bookwatch.core.locks import BookLockRegistry, get_book_locks
from bookwatch.schemas.seed import TestSeedRequest, TestSeedResponse
from bookwatch.services.provider import ProviderClient, get_book_source
from bookwatch.services.seed_book import seed_test_book

router = APIRouter()


@router.post("", response_model=TestSeedResponse)
async def create_test_seed_book(
    request: TestSeedRequest,
    db: Session = Depends(get_db),
    source: ProviderClient = Depends(get_book_source),
    locks: BookLockRegistry = Depends(get_book_locks),
):
    """生成 <CODE>_TEST 测试书（随机注入词级错误）"""
    payload = request.book
    if payload is None:
        if not request.sourceCode:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="需要提供 sourceCode 或书籍内容")
        payload = await source.fetch_book(request.sourceCode)
    rng = random.Random(request.seed) if request.seed is not None else None
    return seed_test_book(db, payload, locks, error_count=request.errorCount, rng=rng)
