"""
MongoDB async database connection using Motor.
Provides database instance, collection access and storage error mapping.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import get_settings
from .errors import StorageUnavailable

settings = get_settings()
logger = logging.getLogger(__name__)

# Collection names
USERS = "users"
ENTRIES = "queue_entries"
COUNTERS = "queue_counters"
SESSIONS = "queue_sessions"
HISTORY = "queue_history"


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        cls.client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            serverSelectionTimeoutMS=settings.SERVER_SELECTION_TIMEOUT_MS
        )
        cls.db = cls.client[settings.DATABASE_NAME]

        # Verify connection
        await cls.client.admin.command('ping')
        logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

        await cls.create_indexes()

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def create_indexes(cls):
        """Create database indexes required by the queue core."""
        if cls.db is None:
            return

        await cls.db[USERS].create_index("email", unique=True)

        # Queue entries
        entries = cls.db[ENTRIES]
        await entries.create_index([("status", ASCENDING), ("queue_number", ASCENDING)])
        await entries.create_index(
            [("service_date", ASCENDING), ("queue_number", ASCENDING)],
            unique=True
        )
        await entries.create_index([("handled_by", ASCENDING), ("created_at", DESCENDING)])
        await entries.create_index("priority")

        # Session shell
        await cls.db[SESSIONS].create_index([("is_running", ASCENDING), ("last_updated", DESCENDING)])

        # History ledger
        history = cls.db[HISTORY]
        await history.create_index("session_id", unique=True)
        await history.create_index([("runner_id", ASCENDING), ("start_time", DESCENDING)])
        await history.create_index("status")
        await history.create_index([("start_time", DESCENDING)])

        logger.info("Database indexes created")

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        if cls.db is None:
            raise StorageUnavailable("Database not connected")
        return cls.db[name]


@asynccontextmanager
async def storage_guard(operation: str):
    """Translate driver failures into ``StorageUnavailable``.

    Driver detail is logged here and never forwarded to the caller.
    Duplicate key errors pass through; callers treat them as conflicts.
    """
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageUnavailable() from exc

