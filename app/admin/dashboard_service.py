"""
Analytics & Dashboard Stats for Admin Panel
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.achievements.achievement_models import AchievementStatus
from app.core.database import serialize_many
from app.erp.erp_models import ERPStatus, STUDENT_LIST_FIELDS

# Cache TTLs
DASHBOARD_STATS_TTL = 60

TOP_STUDENTS_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 10

STUDENT_LIST_PROJECTION = {
    "name": 1, "email": 1, "rollNumber": 1, "department": 1, "section": 1, "year": 1,
    "totalPoints": 1, "profilePicUrl": 1, "achievements": 1, "academicBatch": 1,
    "admissionYear": 1, "graduationYear": 1, "socialLinks": 1, "bannerUrl": 1,
    "resumeUrl": 1, "createdAt": 1, "updatedAt": 1,
}

TIME_INTERVALS = [
    ("year", 31536000),
    ("month", 2592000),
    ("week", 604800),
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
]


class CacheManager:
    """Simple in-memory cache with TTL"""

    def __init__(self):
        self._cache: Dict[str, tuple] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expiry = self._cache[key]
                if datetime.utcnow() < expiry:
                    return value
                del self._cache[key]
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int):
        async with self._lock:
            self._cache[key] = (value, datetime.utcnow() + timedelta(seconds=ttl_seconds))

    async def clear(self):
        async with self._lock:
            self._cache.clear()


# Global cache instance
cache = CacheManager()


def get_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    """'3 days ago', '1 hour ago', 'just now'"""
    now = now or datetime.utcnow()
    seconds = int((now - moment).total_seconds())

    for label, length in TIME_INTERVALS:
        count = seconds // length
        if count >= 1:
            return f"1 {label} ago" if count == 1 else f"{count} {label}s ago"
    return "just now"


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _previous_month_start(month_start: datetime) -> datetime:
    if month_start.month == 1:
        return month_start.replace(year=month_start.year - 1, month=12)
    return month_start.replace(month=month_start.month - 1)


def _sorted_options(values) -> List:
    return sorted([v for v in values if v], reverse=True)

# ==================== ANALYTICS ====================

async def get_analytics(db: AsyncIOMotorDatabase) -> Dict:
    """Top students plus achievement counts by status"""
    cursor = db.users.find({}, {"name": 1, "rollNumber": 1, "section": 1, "totalPoints": 1, "year": 1}) \
        .sort("totalPoints", -1)
    students = await cursor.to_list(length=None)

    top = students[:TOP_STUDENTS_LIMIT]
    for index, student in enumerate(top):
        student["rank"] = index + 1

    counts = {}
    for status in AchievementStatus:
        counts[status.value] = await db.achievements.count_documents({"status": status.value})

    return {
        "topStudents": serialize_many(top),
        "counts": counts,
        "totalStudents": len(students)
    }


async def list_students(
    db: AsyncIOMotorDatabase,
    year: Optional[str] = None,
    academic_batch: Optional[str] = None,
    admission_year: Optional[int] = None
) -> Dict:
    """
    Ranked student list with populated achievements and an ERP summary
    """
    query = {}
    if year:
        query["year"] = year
    if academic_batch:
        query["academicBatch"] = academic_batch
    if admission_year:
        query["admissionYear"] = admission_year

    students = await db.users.find(query, STUDENT_LIST_PROJECTION) \
        .sort([("totalPoints", -1), ("department", 1), ("section", 1), ("rollNumber", 1)]) \
        .to_list(length=None)

    student_ids = [s["_id"] for s in students]

    achievements = await db.achievements.find({"student": {"$in": student_ids}}).to_list(length=None)
    achievements_by_student: Dict[Any, List[dict]] = {}
    for achievement in achievements:
        achievements_by_student.setdefault(achievement["student"], []).append(achievement)

    erps = await db.erps.find({"student": {"$in": student_ids}}, STUDENT_LIST_FIELDS).to_list(length=None)
    erp_map = {e["student"]: e for e in erps}

    for index, student in enumerate(students):
        student["rank"] = index + 1
        student["achievements"] = achievements_by_student.get(student["_id"], [])
        erp = erp_map.get(student["_id"])
        student["erp"] = {
            key: erp.get(key) for key in STUDENT_LIST_FIELDS if key != "student"
        } if erp else None

    return {
        "students": serialize_many(students),
        "total": len(students),
        "filterOptions": {
            "academicBatches": _sorted_options(await db.users.distinct("academicBatch")),
            "admissionYears": _sorted_options(await db.users.distinct("admissionYear")),
        }
    }

# ==================== DASHBOARD ====================

async def get_dashboard_stats(db: AsyncIOMotorDatabase, now: Optional[datetime] = None) -> Dict:
    """
    Overview numbers and recent submissions for the dashboard (cached)
    """
    cache_key = "dashboard:stats"
    cached = await cache.get(cache_key)
    if cached:
        return cached

    now = now or datetime.utcnow()

    total_students = await db.users.count_documents({})
    total_achievements = await db.achievements.count_documents({})
    pending_approvals = await db.achievements.count_documents({"status": AchievementStatus.PENDING.value})
    approved = await db.achievements.count_documents({"status": AchievementStatus.APPROVED.value})

    points_pipeline = await db.users.aggregate([
        {"$group": {"_id": None, "totalPoints": {"$sum": "$totalPoints"}}}
    ]).to_list(length=1)
    total_points = points_pipeline[0]["totalPoints"] if points_pipeline else 0

    approval_rate = round(approved / total_achievements * 100, 1) if total_achievements > 0 else 0

    this_month = _month_start(now)
    last_month = _previous_month_start(this_month)
    new_this_month = await db.users.count_documents({"createdAt": {"$gte": this_month}})
    new_last_month = await db.users.count_documents({"createdAt": {"$gte": last_month, "$lt": this_month}})
    if new_last_month > 0:
        monthly_growth = round((new_this_month - new_last_month) / new_last_month * 100, 1)
    else:
        monthly_growth = new_this_month * 100

    pending_erps = await db.erps.count_documents({"status": ERPStatus.SUBMITTED.value})
    active_announcements = await db.announcements.count_documents({"isActive": True})

    recent = await db.achievements.find({}, {"student": 1, "status": 1, "createdAt": 1}) \
        .sort("createdAt", -1) \
        .limit(RECENT_ACTIVITY_LIMIT) \
        .to_list(length=RECENT_ACTIVITY_LIMIT)

    names = {
        s["_id"]: s.get("name")
        for s in await db.users.find(
            {"_id": {"$in": [a.get("student") for a in recent]}}, {"name": 1}
        ).to_list(length=None)
    }

    activity_types = {
        AchievementStatus.APPROVED.value: "success",
        AchievementStatus.REJECTED.value: "error",
    }
    recent_activities = [
        {
            "text": f"New achievement submitted by {names.get(a.get('student')) or 'Unknown'}",
            "time": get_time_ago(a["createdAt"], now) if a.get("createdAt") else "just now",
            "type": activity_types.get(a.get("status"), "achievement"),
        }
        for a in recent
    ]

    result = {
        "stats": {
            "totalStudents": total_students,
            "totalAchievements": total_achievements,
            "pendingApprovals": pending_approvals,
            "totalPoints": total_points,
            "approvalRate": approval_rate,
            "monthlyGrowth": monthly_growth,
            "pendingERPs": pending_erps,
            "activeAnnouncements": active_announcements,
        },
        "recentActivities": recent_activities
    }

    await cache.set(cache_key, result, DASHBOARD_STATS_TTL)
    return result
