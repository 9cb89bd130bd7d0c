"""
Points Service
Maps (achievement type, level, award) to points and keeps student totals in step
"""

import math
from types import MappingProxyType
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.core.database import to_object_id
from app.core.errors import NotFoundError

LEVEL_BASE_POINTS = MappingProxyType({
    "International": 150,
    "National": 100,
    "State": 80,
    "District": 60,
    "College": 40,
    "Department": 20,
})
DEFAULT_LEVEL_POINTS = 10

AWARD_MULTIPLIERS = MappingProxyType({
    "1": 2.0,
    "2": 1.5,
    "3": 1.2,
    "runner": 1.1,
    "participation": 0.5,
})
DEFAULT_AWARD_MULTIPLIER = 0.5


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_achievement_points(achievement_type: str, level: str, award: Optional[str] = None) -> int:
    """
    Competition with an award: base * multiplier, rounded half-up
    Certification (or competition without award): base only
    """
    base = LEVEL_BASE_POINTS.get(level, DEFAULT_LEVEL_POINTS)

    if achievement_type == "Competition" and award:
        multiplier = AWARD_MULTIPLIERS.get(str(award), DEFAULT_AWARD_MULTIPLIER)
        return round_half_up(base * multiplier)

    return base


async def add_points(db: AsyncIOMotorDatabase, student_id, delta: int) -> int:
    """
    Atomically add delta (may be negative, no clamping) to totalPoints

    Raises:
        NotFoundError: Student does not exist

    Returns:
        int: New totalPoints
    """
    student_oid = to_object_id(student_id)
    if student_oid is None:
        raise NotFoundError("Student not found")

    updated = await db.users.find_one_and_update(
        {"_id": student_oid},
        {"$inc": {"totalPoints": int(delta)}},
        projection={"totalPoints": 1},
        return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise NotFoundError("Student not found")

    return updated.get("totalPoints", 0)


async def adjust_points(db: AsyncIOMotorDatabase, student_id, delta: int) -> int:
    """
    Manual admin adjustment, result floored at 0

    Raises:
        NotFoundError: Student does not exist

    Returns:
        int: New totalPoints
    """
    new_total = await add_points(db, student_id, delta)
    if new_total >= 0:
        return new_total

    # only clamps while the total is still negative
    clamped = await db.users.find_one_and_update(
        {"_id": to_object_id(student_id), "totalPoints": {"$lt": 0}},
        {"$set": {"totalPoints": 0}},
        projection={"totalPoints": 1},
        return_document=ReturnDocument.AFTER
    )
    if clamped:
        return 0

    student = await db.users.find_one({"_id": to_object_id(student_id)}, {"totalPoints": 1})
    return student.get("totalPoints", 0) if student else 0
