from pydantic import BaseModel
from typing import Optional

from bookwatch.schemas.book import BookPayload


class TestSeedRequest(BaseModel):
    # 给出 payload 时直接使用，否则按 sourceCode 从提供方拉取
    sourceCode: Optional[str] = None
    book: Optional[BookPayload] = None
    errorCount: Optional[int] = None
    seed: Optional[int] = None


class TestSeedResponse(BaseModel):
    success: bool
    bookId: str
    code: str
    title: str
    totalChapters: int
    totalParagraphs: int
    totalErrors: int
    affectedParagraphs: int
