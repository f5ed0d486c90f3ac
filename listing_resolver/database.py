from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING

from listing_resolver.config import settings

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> None:
    global _client, _database

    if _client is not None:
        return

    _client = AsyncIOMotorClient(settings.mongo_uri)
    await _client.admin.command("ping")
    _database = _client[settings.db_name]

    stores = _database[settings.stores_collection]
    await stores.create_index([("url", ASCENDING)], name="store_url")
    await stores.create_index([("username", ASCENDING)], name="store_username")


async def close_mongo_connection() -> None:
    global _client, _database

    if _client is not None:
        _client.close()

    _client = None
    _database = None


async def ping_mongo_detailed() -> tuple[bool, str | None]:
    if _client is None:
        return False, "MongoDB client is not initialized."

    try:
        await _client.admin.command("ping")
    except Exception as exc:
        return False, str(exc)

    return True, None


def get_database() -> AsyncIOMotorDatabase:
    if _database is None:
        raise RuntimeError("MongoDB connection has not been initialized.")
    return _database


def get_stores_collection() -> AsyncIOMotorCollection:
    return get_database()[settings.stores_collection]
