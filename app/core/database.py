from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import MONGO_URL, MONGO_DB_NAME

client = AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]


async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return db


# ==================== SERIALIZATION ====================

def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_mongo(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    return serialize_value(doc)


def serialize_many(docs: list[dict]) -> list[dict]:
    return [serialize_mongo(doc) for doc in docs]


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id from a path/body value, None when it is not a valid ObjectId"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


# ==================== INDEXES ====================

async def create_indexes(database: AsyncIOMotorDatabase = None):
    """
    Create database indexes for optimal query performance
    Called during application startup
    """
    database = database if database is not None else db

    # Students
    await database.users.create_index("email", unique=True)
    await database.users.create_index("rollNumber", unique=True)
    await database.users.create_index([("totalPoints", -1), ("createdAt", 1)])
    await database.users.create_index([("year", 1), ("department", 1)])
    await database.users.create_index("academicBatch")

    # Admins
    await database.admins.create_index("username", unique=True)

    # Achievements
    await database.achievements.create_index([("student", 1), ("createdAt", -1)])
    await database.achievements.create_index("status")
    await database.achievements.create_index([("organizedInstitute", 1), ("createdAt", -1)])

    # ERP
    await database.erps.create_index("student", unique=True)
    await database.erps.create_index([("status", 1), ("submittedAt", -1)])

    # Announcements
    await database.announcements.create_index([("isActive", 1), ("createdAt", -1)])

    # Audit logs
    await database.audit_logs.create_index([("target_type", 1), ("target_id", 1)])
    await database.audit_logs.create_index("timestamp")

    print("✅ Student portal indexes created successfully")
