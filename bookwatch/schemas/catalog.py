from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime


class CatalogEntryUpsert(BaseModel):
    bookCode: str
    providerBookId: int
    title: str
    language: str = "es"
    isActive: bool = True


class CatalogSyncRequest(BaseModel):
    entries: List[CatalogEntryUpsert]


class CatalogSyncResponse(BaseModel):
    totalFound: int
    inserted: int
    updated: int


class CatalogEntryResponse(BaseModel):
    id: str
    bookCode: str
    providerBookId: int
    title: str
    language: str
    isActive: bool
    lastValidated: Optional[datetime] = None
    updatedAt: datetime

    model_config = ConfigDict(from_attributes=True)


class CatalogToggleRequest(BaseModel):
    isActive: bool


class CacheStatusResponse(BaseModel):
    entries: int
    lastRefreshed: Optional[datetime] = None
    ttlSeconds: int
    stale: bool
