from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime


class ChapterAffected(BaseModel):
    chapter_id: str
    chapter_number: int
    change_count: int


class ComparisonRecordResponse(BaseModel):
    id: str
    bookId: str
    comparisonDate: datetime
    comparisonType: str
    totalChanges: int
    changedParagraphs: int
    chaptersAffected: List[ChapterAffected] = Field(default_factory=list)
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ComparisonNotesUpdate(BaseModel):
    """只允许修改备注，数值字段不可变"""
    notes: Optional[str] = None


class RecheckResponse(BaseModel):
    """一次复查的结果"""
    bookId: str
    bookCode: str
    totalChanges: int
    changedParagraphs: int
    newParagraphs: int
    skippedChapters: int
    skippedParagraphs: int
    failedItems: int
    partial: bool
    chapters: List[ChapterAffected] = Field(default_factory=list)
    versionNumber: Optional[int] = None
    comparisonId: str
