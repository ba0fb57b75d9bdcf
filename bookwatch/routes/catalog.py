from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookwatch.core.book_cache import BookIdentityCache, get_book_cache
from bookwatch.core.database import get_db
from bookwatch.schemas.catalog import (
    CacheStatusResponse,
    CatalogEntryResponse,
    CatalogSyncRequest,
    CatalogSyncResponse,
    CatalogToggleRequest,
)
from bookwatch.services import catalog as catalog_service

router = APIRouter()


@router.get("", response_model=list[CatalogEntryResponse])
async def list_catalog(active_only: bool = False, db: Session = Depends(get_db)):
    return catalog_service.list_entries(db, active_only=active_only)


@router.post("/sync", response_model=CatalogSyncResponse)
async def sync_catalog(
    request: CatalogSyncRequest,
    db: Session = Depends(get_db),
    cache: BookIdentityCache = Depends(get_book_cache),
):
    """批量插入/更新书目条目"""
    return catalog_service.sync_entries(db, request.entries, cache)


@router.patch("/{book_code}", response_model=CatalogEntryResponse)
async def toggle_catalog_entry(
    book_code: str,
    request: CatalogToggleRequest,
    db: Session = Depends(get_db),
    cache: BookIdentityCache = Depends(get_book_cache),
):
    return catalog_service.toggle_entry(db, book_code, request.isActive, cache)


@router.get("/cache", response_model=CacheStatusResponse)
async def get_cache_status(cache: BookIdentityCache = Depends(get_book_cache)):
    snapshot = cache.snapshot()
    return CacheStatusResponse(
        entries=snapshot.entries,
        lastRefreshed=snapshot.last_refreshed,
        ttlSeconds=snapshot.ttl_seconds,
        stale=snapshot.stale,
    )
