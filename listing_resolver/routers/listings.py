from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from listing_resolver.models.listing import ListingRecord
from listing_resolver.scraper.resolver import ListingResolver

router = APIRouter(prefix="/listings", tags=["listings"])


class CacheClearResponse(BaseModel):
    cleared: int


class CacheSnapshotResponse(BaseModel):
    cache_size: int
    entries: dict[str, ListingRecord]


def get_listing_resolver(request: Request) -> ListingResolver:
    resolver = getattr(request.app.state, "listing_resolver", None)
    if resolver is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Listing resolver is not initialized.",
        )
    return resolver


@router.get("/details", response_model=ListingRecord)
async def get_listing_details(
    url: str = Query(min_length=1),
    resolver: ListingResolver = Depends(get_listing_resolver),
) -> ListingRecord:
    try:
        return await resolver.resolve(url)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_listing_cache(resolver: ListingResolver = Depends(get_listing_resolver)) -> CacheClearResponse:
    return CacheClearResponse(cleared=resolver.clear_cache())


@router.get("/cache", response_model=CacheSnapshotResponse)
async def get_listing_cache(resolver: ListingResolver = Depends(get_listing_resolver)) -> CacheSnapshotResponse:
    entries = resolver.cache_snapshot()
    return CacheSnapshotResponse(cache_size=len(entries), entries=entries)
