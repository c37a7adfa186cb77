import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from chatsync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo(settings: Optional[Settings] = None) -> AsyncIOMotorDatabase:
    global _client, _database
    if _database is not None:
        return _database
    settings = settings or get_settings()
    # tz_aware keeps created_at comparable with datetime.now(timezone.utc)
    _client = AsyncIOMotorClient(settings.MONGO_URL, tz_aware=True)
    _database = _client[settings.MONGO_DB_NAME]
    logger.info("Connected to MongoDB database %s", settings.MONGO_DB_NAME)
    return _database


async def close_mongo_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        logger.info("Closed MongoDB connection")
    _client = None
    _database = None


def get_database() -> AsyncIOMotorDatabase:
    if _database is None:
        raise RuntimeError("MongoDB is not connected; call connect_to_mongo() first")
    return _database
