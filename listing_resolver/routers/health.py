from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from listing_resolver.config import settings
from listing_resolver.database import ping_mongo_detailed

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    mongo: str
    environment: str
    listing_cache_size: int | None = None
    strategies: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detail: str | None = None


@router.get("/health", response_model=HealthResponse)
async def get_health(request: Request) -> JSONResponse:
    mongo_ok, mongo_detail = await ping_mongo_detailed()
    resolver = getattr(request.app.state, "listing_resolver", None)
    http_status = status.HTTP_200_OK if mongo_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    payload = HealthResponse(
        status="ok" if mongo_ok else "degraded",
        mongo="up" if mongo_ok else "down",
        environment=settings.app_env,
        listing_cache_size=resolver.cache_size if resolver is not None else None,
        strategies=resolver.strategy_names if resolver is not None else [],
        detail=mongo_detail if not mongo_ok else None,
    )
    return JSONResponse(status_code=http_status, content=payload.model_dump(mode="json", exclude_none=True))
