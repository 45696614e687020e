"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    return get_database()[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Application cases; history is embedded and keyed by sequence_number
    applications = db["applications"]
    applications.create_index("application_id", unique=True)
    applications.create_index([
        ("current_state", ASCENDING),
        ("priority", ASCENDING),
        ("created_at", ASCENDING),
        ("application_id", ASCENDING),
    ])
    applications.create_index("assigned_to")
    applications.create_index("sla_deadline", background=True)

    # Notification outbox
    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("status", ASCENDING), ("next_retry_at", ASCENDING)])
    notification_outbox.create_index([("application_id", ASCENDING), ("sequence_number", ASCENDING)])
    notification_outbox.create_index("locked_until")

    # Workflow tasks; one per transition into a working state
    tasks = db["tasks"]
    tasks.create_index("task_id", unique=True)
    tasks.create_index([("application_id", ASCENDING), ("sequence_number", ASCENDING)], unique=True)
    tasks.create_index([("assigned_to", ASCENDING), ("status", ASCENDING)])

    # Roles
    db["user_roles"].create_index("actor_id", unique=True)

    # Facts sources
    for name in ("documents", "control_visits", "control_photos",
                 "technical_reports", "social_reports", "director_reviews"):
        db[name].create_index("application_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
