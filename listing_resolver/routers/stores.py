from fastapi import APIRouter, Depends, HTTPException, status

from listing_resolver.models.store import StoreRegistration, StoreSummary
from listing_resolver.routers.listings import get_listing_resolver
from listing_resolver.scraper.resolver import ListingResolver
from listing_resolver.services.store_service import StoreService

router = APIRouter(prefix="/stores", tags=["stores"])


def get_store_service(resolver: ListingResolver = Depends(get_listing_resolver)) -> StoreService:
    return StoreService(resolver)


@router.get("", response_model=list[StoreSummary])
async def list_stores(service: StoreService = Depends(get_store_service)) -> list[StoreSummary]:
    try:
        return await service.list_stores()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_store(
    payload: StoreRegistration,
    service: StoreService = Depends(get_store_service),
) -> dict:
    try:
        return await service.register_store(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
