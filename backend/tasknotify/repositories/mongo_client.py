"""MongoDB Client - Connection, transactions and index management"""
from typing import Any, Callable, Dict, Optional, TypeVar
from pymongo import MongoClient as PyMongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import Settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Collection names
IDENTITY_LINKS = "identity_links"
IDENTITY_LINK_HISTORY = "identity_link_history"
LINKING_CODES = "linking_codes"
NOTIFICATION_PREFERENCES = "notification_preferences"
DELIVERY_LOGS = "delivery_logs"
PROJECT_CHANNELS = "project_channels"
TASKS = "tasks"
PROJECTS = "projects"
USERS = "users"


def create_client(settings: Settings) -> PyMongoClient:
    """Create a MongoDB client and verify the connection"""
    logger.info("Connecting to MongoDB")
    client = PyMongoClient(
        settings.mongo_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
        socketTimeoutMS=30000,
    )
    try:
        client.admin.command("ping")
        logger.info("MongoDB connection successful")
    except ConnectionFailure as e:
        logger.error(f"MongoDB connection failed: {e}")
        raise
    return client


def get_database(client: PyMongoClient, settings: Settings) -> Database:
    """Get the application database"""
    logger.info(f"Using database: {settings.mongo_db}")
    return client[settings.mongo_db]


def run_in_transaction(db: Database, callback: Callable[[Optional[ClientSession]], T]) -> T:
    """
    Run `callback(session)` inside a multi-document transaction.

    `with_transaction` retries on transient transaction errors and
    commits or aborts as a unit.
    """
    with db.client.start_session() as session:
        return session.with_transaction(callback)


def create_indexes(db: Database) -> None:
    """Create all required indexes"""
    logger.info("Creating MongoDB indexes...")

    # Identity links: one active link per application user
    identity_links = db[IDENTITY_LINKS]
    identity_links.create_index(
        "app_user_id",
        name="one_active_link_per_app_user",
        unique=True,
        partialFilterExpression={"is_active": True},
    )
    identity_links.create_index([("app_user_id", ASCENDING), ("is_active", ASCENDING)])

    db[IDENTITY_LINK_HISTORY].create_index([("chat_user_id", ASCENDING), ("archived_at", DESCENDING)])

    # Linking codes expire on their own
    linking_codes = db[LINKING_CODES]
    linking_codes.create_index("expires_at", name="linking_code_expiry", expireAfterSeconds=0)
    linking_codes.create_index("app_user_id")

    # Delivery log history, newest first per recipient
    delivery_logs = db[DELIVERY_LOGS]
    delivery_logs.create_index("log_id", unique=True)
    delivery_logs.create_index([
        ("recipient_app_user_id", ASCENDING),
        ("sent_at", DESCENDING),
        ("log_id", DESCENDING),
    ])
    delivery_logs.create_index("dedupe_key")

    # Preferences with an active DND window (sweep job)
    db[NOTIFICATION_PREFERENCES].create_index("do_not_disturb.until")

    # Scanner queries on the task application's collection
    tasks = db[TASKS]
    tasks.create_index([("status", ASCENDING), ("due_date", ASCENDING)])

    logger.info("MongoDB indexes created successfully")


def health_check(db: Database) -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        db.client.admin.command("ping")
        return {
            "status": "healthy",
            "database": db.name,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": db.name,
            "error": str(e)
        }
