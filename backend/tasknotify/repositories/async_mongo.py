"""Async MongoDB Client using Motor for change streams"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from ..config.settings import Settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


def create_async_client(settings: Settings) -> AsyncIOMotorClient:
    """Create an async MongoDB client using Motor"""
    logger.info("Creating async MongoDB client")
    return AsyncIOMotorClient(
        settings.mongo_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
    )


def get_async_database(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    """Get the async application database"""
    return client[settings.mongo_db]

