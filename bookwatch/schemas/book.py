from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime


class ParagraphPayload(BaseModel):
    """提供方返回的段落"""
    content: str
    refcode: Optional[str] = None


class ChapterPayload(BaseModel):
    """提供方返回的章节"""
    number: int
    title: str = ""
    paragraphs: List[ParagraphPayload] = Field(default_factory=list)


class BookPayload(BaseModel):
    """提供方返回的整本书（抓取、接口、手动上传三种来源统一成这个结构）"""
    title: str
    code: str
    chapters: List[ChapterPayload] = Field(default_factory=list)


class BookImportRequest(BaseModel):
    """导入新书：给出 payload 时直接使用，否则从提供方拉取"""
    code: str
    language: Optional[str] = None
    book: Optional[BookPayload] = None


class BookRecheckRequest(BaseModel):
    """复查：给出 payload 时直接比对，否则从提供方拉取"""
    book: Optional[BookPayload] = None


class BookResponse(BaseModel):
    id: str
    title: str
    code: str
    providerCode: Optional[str] = None
    language: str
    isTestSeed: bool
    totalChanges: int
    lastCheckDate: Optional[datetime]
    importedAt: datetime
    createdAt: datetime
    updatedAt: datetime

    model_config = ConfigDict(from_attributes=True)


class ChapterResponse(BaseModel):
    id: str
    bookId: str
    number: int
    title: str
    changeCount: int
    updatedAt: datetime

    model_config = ConfigDict(from_attributes=True)


class BookDetailResponse(BookResponse):
    chapters: List[ChapterResponse] = Field(default_factory=list)


class MonitoringStatsResponse(BaseModel):
    totalBooks: int
    booksWithChanges: int
    booksNeedingReview: int
    totalChanges: int
    lastReviewedBook: Optional[BookResponse] = None


class BookDeleteResponse(BaseModel):
    code: str
    deleted: bool
