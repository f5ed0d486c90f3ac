from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pymongo import ASCENDING

from listing_resolver.database import get_stores_collection
from listing_resolver.models.listing import ADDRESS_UNAVAILABLE, RATING_NOT_APPLICABLE
from listing_resolver.models.store import StoreRegistration, StoreSummary
from listing_resolver.scraper.resolver import ListingResolver
from listing_resolver.scraper.validators import clean_text

LOGGER = logging.getLogger(__name__)


class StoreService:
    _UNKNOWN_STORE = "Unknown Store"
    _NO_URL_ADDRESS = "No URL provided"

    def __init__(self, resolver: ListingResolver, stores: Any | None = None) -> None:
        self._resolver = resolver
        self._stores = stores

    async def list_stores(self) -> list[StoreSummary]:
        collection = self._collection()
        documents = await collection.find({}, sort=[("username", ASCENDING)]).to_list(length=None)
        if not documents:
            return []

        urls = [url for url in (clean_text(doc.get("url")) for doc in documents) if url]
        records = dict(zip(urls, await self._resolver.resolve_many(urls)))

        summaries: list[StoreSummary] = []
        informative = 0
        for document in documents:
            url = clean_text(document.get("url")) or ""
            registered_name = clean_text(document.get("store_name")) or self._UNKNOWN_STORE
            record = records.get(url)

            if record is None:
                name, address, rating = registered_name, self._NO_URL_ADDRESS, RATING_NOT_APPLICABLE
            elif record.is_informative:
                informative += 1
                name, address, rating = record.name, record.address, record.rating
            else:
                name, address, rating = registered_name, record.address or ADDRESS_UNAVAILABLE, record.rating

            summaries.append(
                StoreSummary(
                    id=str(document.get("_id")),
                    username=str(document.get("username") or ""),
                    url=url,
                    name=name,
                    address=address,
                    rating=rating,
                )
            )

        LOGGER.info(
            "Listed %d stores: %d with listing details, %d without URL, cache size %d.",
            len(summaries),
            informative,
            len(documents) - len(urls),
            self._resolver.cache_size,
        )
        return summaries

    async def register_store(self, payload: StoreRegistration) -> dict[str, Any]:
        username = clean_text(payload.username)
        url = clean_text(payload.url)
        if not username or not url:
            raise ValueError("Both 'username' and 'url' are required.")

        collection = self._collection()
        if await collection.find_one({"url": url}) is not None:
            raise ValueError("Store with this URL already exists.")
        if await collection.find_one({"username": username}) is not None:
            raise ValueError("Store with this username already exists.")

        store_name = clean_text(payload.store_name)
        if not store_name:
            store_name = (await self._resolver.resolve(url)).name
            LOGGER.info("Store name for %s auto-populated as %r", username, store_name)

        now = datetime.now(timezone.utc)
        inserted = await collection.insert_one(
            {
                "username": username,
                "url": url,
                "store_name": store_name,
                "created_at": now,
                "updated_at": now,
            }
        )
        return {
            "id": str(inserted.inserted_id),
            "username": username,
            "url": url,
            "store_name": store_name,
        }

    def _collection(self) -> Any:
        if self._stores is not None:
            return self._stores
        return get_stores_collection()
