"""MongoDB Client - Process-wide connection, collections and indexes

One pymongo client per process, created on first use. Clients are
tz_aware so every datetime read back from MongoDB is UTC-aware, matching
what utils.time.utc_now() writes.
"""
from typing import Any, Dict, List, Optional, Tuple, Union
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None

IndexKeys = Union[str, List[Tuple[str, int]]]

INDEXES: Dict[str, List[Tuple[IndexKeys, Dict[str, Any]]]] = {
    "accounts": [
        ("account_id", {"unique": True}),
        ("subject_id", {"unique": True}),
        ("email", {"unique": True}),
        ([("role", ASCENDING), ("is_active", ASCENDING)], {}),
        ("created_at", {}),
    ],
    "categories": [
        ("category_id", {"unique": True}),
        # lower-cased name; enforces case-insensitive uniqueness
        ("name_key", {"unique": True}),
        ("is_active", {}),
    ],
    "tickets": [
        ("ticket_id", {"unique": True}),
        ([("created_by", ASCENDING), ("status", ASCENDING)], {}),
        ([("assigned_to", ASCENDING), ("status", ASCENDING)], {}),
        ([("category_id", ASCENDING), ("status", ASCENDING)], {}),
        ([("last_activity_at", DESCENDING)], {}),
        ("created_at", {}),
    ],
    "notification_outbox": [
        ("notification_id", {"unique": True}),
        ([("status", ASCENDING), ("next_retry_at", ASCENDING)], {}),
        ("ticket_id", {}),
        ("locked_until", {}),
    ],
}


def get_client() -> PyMongoClient:
    """Get or create the MongoDB client, failing fast if the server is unreachable"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB database '{settings.mongo_db}'")
        client = PyMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            client.admin.command("ping")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            client.close()
            raise
        _client = client
    return _client


def get_database() -> Database:
    global _database
    if _database is None:
        _database = get_client()[settings.mongo_db]
    return _database


def get_collection(name: str) -> Collection:
    return get_database()[name]


def close_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _database = None


def create_indexes() -> None:
    """Create every index in INDEXES; existing ones are left as they are"""
    db = get_database()
    created = 0
    for collection_name, specs in INDEXES.items():
        collection = db[collection_name]
        for keys, options in specs:
            collection.create_index(keys, **options)
            created += 1
    logger.info(f"Ensured {created} indexes across {len(INDEXES)} collections")


def health_check() -> Dict[str, Any]:
    """Ping the database; never raises"""
    try:
        get_database().command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {"status": "unhealthy", "database": settings.mongo_db, "error": str(e)}
    return {"status": "healthy", "database": settings.mongo_db, "connection": "ok"}
