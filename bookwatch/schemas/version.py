from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import date, datetime


class BookVersionResponse(BaseModel):
    id: str
    bookId: str
    versionNumber: int
    sourceType: str
    isBaseline: bool
    editionDate: Optional[date] = None
    notes: Optional[str] = None
    importDate: datetime
    snapshotCount: int = 0

    model_config = ConfigDict(from_attributes=True)


class SetBaselineResponse(BaseModel):
    bookId: str
    baselineVersionId: str
    baselineVersionNumber: int
    previousVersionNumber: Optional[int] = None
    paragraphsUpdated: int
    paragraphsUncovered: int
