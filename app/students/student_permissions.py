from fastapi import Depends, Header, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import get_db, to_object_id
from app.core.security import decode_student_token, extract_bearer
from app.students.student_models import PRIVATE_FIELDS


class StudentContext:
    """
    Contains validated student profile
    """
    def __init__(self, profile: dict):
        self.oid = profile["_id"]
        self.student_id = str(profile["_id"])
        self.name = profile.get("name")
        self.email = profile.get("email")
        self.roll_number = profile.get("rollNumber")
        self.department = profile.get("department")
        self.section = profile.get("section")
        self.year = profile.get("year")
        self.admission_year = profile.get("admissionYear")
        self.graduation_year = profile.get("graduationYear")
        self.academic_batch = profile.get("academicBatch")
        self.profile = profile


async def get_current_student(
    authorization: str = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> StudentContext:
    """
    Dependency: Validates a student token and returns the student's context

    Raises:
        401: Missing / invalid token, or student no longer exists
    """
    token = extract_bearer(authorization)
    payload = decode_student_token(token)

    student_oid = to_object_id(payload.get("id"))
    if student_oid is None:
        raise HTTPException(status_code=401, detail="Invalid token: missing student id")

    profile = await db.users.find_one({"_id": student_oid}, PRIVATE_FIELDS)
    if not profile:
        raise HTTPException(status_code=401, detail="Student not found")

    return StudentContext(profile)


async def verify_achievement_ownership(
    db: AsyncIOMotorDatabase,
    achievement_id: str,
    student: StudentContext
) -> dict:
    """
    Validates the achievement exists and belongs to the student

    Raises:
        404: Achievement not found
        403: Achievement belongs to another student
    """
    achievement_oid = to_object_id(achievement_id)
    achievement = await db.achievements.find_one({"_id": achievement_oid}) if achievement_oid else None

    if not achievement:
        raise HTTPException(status_code=404, detail="Not found")

    if achievement.get("student") != student.oid:
        raise HTTPException(status_code=403, detail="Forbidden")

    return achievement
