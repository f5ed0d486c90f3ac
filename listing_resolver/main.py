import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from listing_resolver.config import settings
from listing_resolver.database import close_mongo_connection, connect_to_mongo
from listing_resolver.routers.health import router as health_router
from listing_resolver.routers.listings import router as listings_router
from listing_resolver.routers.stores import router as stores_router
from listing_resolver.scraper.resolver import ListingResolver

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
LOGGER = logging.getLogger("listing_resolver")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    app.state.listing_resolver = ListingResolver.from_settings(settings)
    LOGGER.info("Listing resolver ready. Strategy order: %s", ", ".join(app.state.listing_resolver.strategy_names))
    try:
        yield
    finally:
        app.state.listing_resolver = None
        await close_mongo_connection()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Marketplace API that resolves store details from public map listings.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(listings_router)
app.include_router(stores_router)
