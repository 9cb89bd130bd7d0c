"""
Achievement workflow
Submission (with suspicious-activity screening), review and certificate validation
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.achievements.achievement_models import (
    AchievementCategory,
    AchievementLevel,
    AchievementRecord,
    AchievementStatus,
    AchievementType,
    Award,
)
from app.core.database import serialize_mongo, serialize_many, to_object_id
from app.core.errors import NotFoundError, ValidationError
from app.detection.suspicious_activity import suspicious_activity_detector
from app.files.file_utils import cleanup_file_references, validate_proof_files
from app.points.points_service import add_points, calculate_achievement_points
from app.validation.certificate_validator import certificate_validator

logger = logging.getLogger(__name__)

SUSPICIOUS_WARNING = "Submission flagged for additional review due to suspicious patterns"
ALREADY_REVIEWED = "Achievement already reviewed"


def _values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


async def attach_students(db: AsyncIOMotorDatabase, achievements: List[dict], fields: Dict) -> List[dict]:
    """Replace each achievement's student ObjectId with a small profile dict"""
    student_ids = list({a["student"] for a in achievements if a.get("student")})
    if not student_ids:
        return achievements

    students = await db.users.find({"_id": {"$in": student_ids}}, fields).to_list(length=None)
    by_id = {s["_id"]: s for s in students}

    for achievement in achievements:
        achievement["student"] = by_id.get(achievement.get("student"), achievement.get("student"))
    return achievements


async def _get_or_404(db: AsyncIOMotorDatabase, achievement_id: str) -> dict:
    achievement_oid = to_object_id(achievement_id)
    achievement = await db.achievements.find_one({"_id": achievement_oid}) if achievement_oid else None
    if not achievement:
        raise NotFoundError("Achievement not found")
    return achievement

# ==================== SUBMISSION ====================

def validate_submission(form: Dict) -> None:
    """
    Raises:
        ValidationError: Missing required fields or values outside the allowed sets
    """
    required = ("title", "achievementType", "category", "dateOfIssue", "organizedInstitute", "level")
    if not all(form.get(key) for key in required):
        raise ValidationError("Missing required fields")

    if form["category"] == AchievementCategory.NON_TECHNICAL.value and not form.get("subCategory"):
        raise ValidationError("Sub-category is required for non-technical achievements")

    if form["achievementType"] == AchievementType.COMPETITION.value and not form.get("award"):
        raise ValidationError("Award is required for competition achievements")

    if form["achievementType"] not in _values(AchievementType):
        raise ValidationError("Invalid achievement type")
    if form["category"] not in _values(AchievementCategory):
        raise ValidationError("Invalid category")
    if form["level"] not in _values(AchievementLevel):
        raise ValidationError("Invalid level")
    if form["achievementType"] == AchievementType.COMPETITION.value and form["award"] not in _values(Award):
        raise ValidationError("Invalid award")


async def submit_achievement(
    db: AsyncIOMotorDatabase,
    student_oid,
    form: Dict,
    proof_files: List[str]
) -> Dict:
    """
    Screen and store a new pending achievement

    Returns:
        dict: {"achievement", "suspicious"}
    """
    validate_submission(form)

    is_competition = form["achievementType"] == AchievementType.COMPETITION.value
    is_non_technical = form["category"] == AchievementCategory.NON_TECHNICAL.value

    record = AchievementRecord(
        student=student_oid,
        title=form["title"].strip(),
        achievementType=form["achievementType"],
        description=form.get("description"),
        category=form["category"],
        subCategory=form.get("subCategory") if is_non_technical else None,
        dateOfIssue=form["dateOfIssue"],
        organizedInstitute=form["organizedInstitute"].strip(),
        level=form["level"],
        award=form.get("award") if is_competition else None,
        proofFiles=proof_files,
        links={
            "leetcode": form.get("leetcode") or "",
            "linkedin": form.get("linkedin") or "",
            "codechef": form.get("codechef") or "",
        },
    )
    document = record.dict()

    # Screen against history before this submission is stored
    verdict = await suspicious_activity_detector.analyze_submission_pattern(db, student_oid, document)
    if verdict.get("isSuspicious") or verdict.get("requiresReview"):
        document["suspiciousActivity"] = verdict
        logger.warning(
            "Suspicious submission by %s: risk %s, patterns %s",
            student_oid, verdict.get("riskScore"),
            [p["type"] for p in verdict.get("suspiciousPatterns", [])]
        )

    result = await db.achievements.insert_one(document)
    document["_id"] = result.inserted_id

    await db.users.update_one({"_id": student_oid}, {"$push": {"achievements": result.inserted_id}})

    return {"achievement": serialize_mongo(document), "suspicious": bool(verdict.get("isSuspicious"))}


async def list_student_achievements(db: AsyncIOMotorDatabase, student_oid) -> List[dict]:
    items = await db.achievements.find({"student": student_oid}).sort("createdAt", -1).to_list(length=None)
    return serialize_many(items)


async def get_achievement(db: AsyncIOMotorDatabase, achievement_id: str) -> dict:
    achievement = await _get_or_404(db, achievement_id)
    await attach_students(db, [achievement], {"name": 1, "rollNumber": 1, "section": 1})
    return serialize_mongo(achievement)


async def delete_own_achievement(db: AsyncIOMotorDatabase, achievement: dict, student_oid) -> None:
    """
    Owner deletion, pending submissions only

    Raises:
        ValidationError: Already reviewed
    """
    result = await db.achievements.delete_one({
        "_id": achievement["_id"],
        "student": student_oid,
        "status": AchievementStatus.PENDING.value
    })
    if result.deleted_count == 0:
        raise ValidationError(ALREADY_REVIEWED)

    await db.users.update_one({"_id": student_oid}, {"$pull": {"achievements": achievement["_id"]}})

# ==================== ADMIN REVIEW ====================

async def list_achievements_for_admin(
    db: AsyncIOMotorDatabase,
    status: Optional[str] = None,
    student_id: Optional[str] = None,
    category: Optional[str] = None,
    year: Optional[str] = None,
    with_file_status: bool = False
) -> List[dict]:
    query = {}
    if status:
        query["status"] = status
    if category:
        query["category"] = category
    if student_id:
        query["student"] = to_object_id(student_id)
    if year:
        students = await db.users.find({"year": year}, {"_id": 1}).to_list(length=None)
        query["student"] = {"$in": [s["_id"] for s in students]}

    items = await db.achievements.find(query).sort("createdAt", -1).to_list(length=None)
    await attach_students(db, items, {
        "name": 1, "rollNumber": 1, "email": 1, "section": 1, "year": 1, "totalPoints": 1
    })

    if with_file_status:
        for item in items:
            item["fileValidation"] = validate_proof_files(item.get("proofFiles"))

    return serialize_many(items)


def _ensure_pending(achievement: dict):
    """Review is one-way: pending -> approved | rejected"""
    if achievement.get("status") != AchievementStatus.PENDING.value:
        raise ValidationError(ALREADY_REVIEWED)


async def approve_achievement(
    db: AsyncIOMotorDatabase,
    achievement_id: str,
    custom_points: Optional[int] = None,
    admin_note: Optional[str] = None
) -> Dict:
    """
    Approve a pending achievement and award its points once

    The status flip is conditional on the achievement still being pending;
    points are only added when that flip matched.

    Raises:
        NotFoundError: Unknown achievement or student
        ValidationError: Already approved, or already rejected

    Returns:
        dict: achievement, pointsAwarded, totalPoints, student (name/email)
    """
    achievement = await _get_or_404(db, achievement_id)
    if achievement.get("status") == AchievementStatus.APPROVED.value:
        raise ValidationError("Already approved")
    _ensure_pending(achievement)

    student = await db.users.find_one({"_id": achievement["student"]}, {"name": 1, "email": 1, "totalPoints": 1})
    if not student:
        raise NotFoundError("Student not found")

    if custom_points is not None:
        points = int(custom_points)
    else:
        points = calculate_achievement_points(
            achievement.get("achievementType"),
            achievement.get("level"),
            achievement.get("award")
        )

    updates = {
        "status": AchievementStatus.APPROVED.value,
        "points": points,
        "reviewedAt": datetime.utcnow(),
        "updatedAt": datetime.utcnow()
    }
    if admin_note:
        updates["adminNote"] = admin_note

    result = await db.achievements.update_one(
        {"_id": achievement["_id"], "status": AchievementStatus.PENDING.value},
        {"$set": updates}
    )
    if result.modified_count == 0:
        raise ValidationError(ALREADY_REVIEWED)

    total_points = student.get("totalPoints", 0) or 0
    if points > 0:
        total_points = await add_points(db, achievement["student"], points)

    achievement.update(updates)
    return {
        "achievement": serialize_mongo(achievement),
        "pointsAwarded": points,
        "totalPoints": total_points,
        "student": {"name": student.get("name"), "email": student.get("email")}
    }


async def reject_achievement(
    db: AsyncIOMotorDatabase,
    achievement_id: str,
    admin_note: Optional[str] = None
) -> Dict:
    """
    Reject a pending achievement; points and the student's total are left untouched

    Raises:
        NotFoundError: Unknown achievement
        ValidationError: Already reviewed
    """
    achievement = await _get_or_404(db, achievement_id)
    _ensure_pending(achievement)

    updates = {
        "status": AchievementStatus.REJECTED.value,
        "reviewedAt": datetime.utcnow(),
        "updatedAt": datetime.utcnow()
    }
    if admin_note:
        updates["adminNote"] = admin_note

    result = await db.achievements.update_one(
        {"_id": achievement["_id"], "status": AchievementStatus.PENDING.value},
        {"$set": updates}
    )
    if result.modified_count == 0:
        raise ValidationError(ALREADY_REVIEWED)
    achievement.update(updates)

    student = await db.users.find_one({"_id": achievement["student"]}, {"name": 1, "email": 1})
    return {
        "achievement": serialize_mongo(achievement),
        "student": {"name": student.get("name"), "email": student.get("email")} if student else None
    }


async def toggle_highlight(db: AsyncIOMotorDatabase, achievement_id: str) -> bool:
    achievement = await _get_or_404(db, achievement_id)
    highlighted = not achievement.get("highlighted", False)
    await db.achievements.update_one({"_id": achievement["_id"]}, {"$set": {"highlighted": highlighted}})
    return highlighted


async def admin_delete_achievement(db: AsyncIOMotorDatabase, achievement_id: str) -> dict:
    """Admin deletion does not refund points already awarded"""
    achievement = await _get_or_404(db, achievement_id)
    await db.achievements.delete_one({"_id": achievement["_id"]})
    await db.users.update_one({"_id": achievement["student"]}, {"$pull": {"achievements": achievement["_id"]}})
    return achievement


async def cleanup_broken_files(db: AsyncIOMotorDatabase) -> Dict:
    achievements = await db.achievements.find({}, {"proofFiles": 1}).to_list(length=None)
    cleaned = 0

    for achievement in achievements:
        proof_files = achievement.get("proofFiles") or []
        kept = cleanup_file_references(proof_files)
        if len(kept) != len(proof_files):
            await db.achievements.update_one({"_id": achievement["_id"]}, {"$set": {"proofFiles": kept}})
            cleaned += 1

    return {
        "message": f"Cleaned up broken file references in {cleaned} achievements",
        "totalAchievements": len(achievements),
        "cleanedAchievements": cleaned
    }

# ==================== CERTIFICATE VALIDATION ====================

async def validate_achievement_certificate(db: AsyncIOMotorDatabase, achievement_id: str) -> Dict:
    """
    Run the certificate validator on the first proof file and store the verdict

    Raises:
        NotFoundError: Unknown achievement
        ValidationError: No proof files
    """
    achievement = await _get_or_404(db, achievement_id)
    proof_files = achievement.get("proofFiles") or []
    if not proof_files:
        raise ValidationError("No certificate files to validate")

    student = await db.users.find_one({"_id": achievement["student"]}, {"name": 1}) or {}

    context = {
        "title": achievement.get("title"),
        "category": achievement.get("achievementType"),
        "level": achievement.get("level"),
        "issuer": achievement.get("organizedInstitute") or achievement.get("description"),
        "studentName": student.get("name"),
        "dateOfAchievement": achievement.get("dateOfIssue") or achievement.get("createdAt"),
    }

    verdict = await certificate_validator.validate_certificate(proof_files[0], context)
    validated_at = datetime.utcnow()

    await db.achievements.update_one(
        {"_id": achievement["_id"]},
        {"$set": {"validationResult": verdict, "lastValidated": validated_at}}
    )
    logger.info(
        "Certificate validated for %s: trust %s, valid %s",
        achievement_id, verdict.get("trustScore"), verdict.get("isValid")
    )

    achievement["validationResult"] = verdict
    achievement["lastValidated"] = validated_at
    return {"validation": serialize_mongo(verdict), "achievement": serialize_mongo(achievement)}
