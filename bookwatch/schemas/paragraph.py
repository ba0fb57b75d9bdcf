from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal
from datetime import datetime

CHANGE_HISTORY_SCHEMA_VERSION = 1


class ChangeHistoryEntry(BaseModel):
    """段落变更历史的一条记录（以 JSON 存在 paragraph.changeHistory 中）"""
    schema_version: int = CHANGE_HISTORY_SCHEMA_VERSION
    date: datetime
    old_text: str
    new_text: str


class DiffSegmentResponse(BaseModel):
    kind: Literal["equal", "insert", "delete"]
    text: str


class ParagraphResponse(BaseModel):
    id: str
    chapterId: str
    paragraphNumber: int
    refcode: Optional[str]
    baseText: str
    latestText: str
    hasChanged: bool
    changeHistory: List[ChangeHistoryEntry] = Field(default_factory=list)
    updatedAt: datetime
    # 仅当 base 与 latest 不同时给出，用于高亮显示
    diff: Optional[List[DiffSegmentResponse]] = None

    model_config = ConfigDict(from_attributes=True)


class ChapterDetailResponse(BaseModel):
    id: str
    bookId: str
    number: int
    title: str
    changeCount: int
    paragraphs: List[ParagraphResponse] = Field(default_factory=list)


class ParagraphDiffResponse(BaseModel):
    paragraphId: str
    refcode: Optional[str]
    oldText: str
    newText: str
    hasChanged: bool
    insertedWords: int
    deletedWords: int
    segments: List[DiffSegmentResponse]
