import logging
import re
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.database import serialize_mongo, serialize_many, to_object_id
from app.core.errors import NotFoundError, ValidationError
from app.core.security import create_student_token, hash_password, verify_password
from app.students.student_models import (
    LEADERBOARD_FIELDS,
    MIN_ADMISSION_YEAR,
    PRIVATE_FIELDS,
    PROGRAM_LENGTH_YEARS,
    SECTIONS,
    StudentRecord,
    StudyYear,
)
from app.students.student_schemas import ProfileUpdateRequest, RegisterRequest

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
LEADERBOARD_LIMIT = 100
LEADERBOARD_SORT = [("totalPoints", -1), ("createdAt", 1)]

# ==================== REGISTRATION / LOGIN ====================

async def register_student(db: AsyncIOMotorDatabase, data: RegisterRequest) -> dict:
    """
    Create a student account

    Raises:
        ValidationError: Missing / invalid fields, or email / roll number taken
    """
    fields = data.dict()
    if not all(fields.get(k) for k in (
        "name", "email", "rollNumber", "password", "department", "section", "year", "admissionYear"
    )):
        raise ValidationError("All fields are required")

    try:
        admission_year = int(data.admissionYear)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid admission year")

    current_year = datetime.utcnow().year
    if admission_year < MIN_ADMISSION_YEAR or admission_year > current_year + 1:
        raise ValidationError("Please enter a valid admission year")

    if not EMAIL_PATTERN.match(data.email):
        raise ValidationError("Please enter a valid email address")

    if data.year not in [y.value for y in StudyYear]:
        raise ValidationError("Year must be I, II, III, or IV")

    if data.section not in SECTIONS:
        raise ValidationError("Invalid section")

    existing = await db.users.find_one({"$or": [{"email": data.email}, {"rollNumber": data.rollNumber}]})
    if existing:
        if existing.get("email") == data.email:
            raise ValidationError("Email already registered")
        raise ValidationError("Roll number already registered")

    graduation_year = admission_year + PROGRAM_LENGTH_YEARS
    record = StudentRecord(
        name=data.name.strip(),
        email=data.email,
        rollNumber=data.rollNumber,
        passwordHash=hash_password(data.password),
        department=data.department,
        section=data.section,
        year=data.year,
        admissionYear=admission_year,
        graduationYear=graduation_year,
        academicBatch=f"{admission_year}-{graduation_year}",
    )

    try:
        result = await db.users.insert_one(record.dict())
    except DuplicateKeyError:
        raise ValidationError("Email or roll number already registered")

    student_id = str(result.inserted_id)
    return {
        "token": create_student_token(student_id),
        "user": {
            "id": student_id,
            "name": record.name,
            "email": record.email,
            "department": record.department,
            "section": record.section,
            "academicBatch": record.academicBatch,
            "admissionYear": record.admissionYear,
            "graduationYear": record.graduationYear,
        }
    }


async def login_student(db: AsyncIOMotorDatabase, identifier: Optional[str], password: Optional[str]) -> dict:
    """
    Login with email or roll number

    Raises:
        ValidationError: Missing or wrong credentials
    """
    if not identifier or not password:
        raise ValidationError("Missing credentials")

    student = await db.users.find_one({"$or": [{"email": identifier}, {"rollNumber": identifier}]})
    if not student:
        logger.info("Login failed, unknown identifier %s", identifier)
        raise ValidationError("Invalid credentials - User not found")

    if not verify_password(password, student.get("passwordHash")):
        logger.info("Login failed, wrong password for %s", student.get("email"))
        raise ValidationError("Invalid credentials - Wrong password")

    student_id = str(student["_id"])
    return {
        "token": create_student_token(student_id),
        "user": {
            "id": student_id,
            "name": student.get("name"),
            "email": student.get("email"),
            "section": student.get("section"),
            "role": "student",
        }
    }

# ==================== PROFILE ====================

async def get_profile_with_rank(db: AsyncIOMotorDatabase, student_oid) -> dict:
    student = await db.users.find_one({"_id": student_oid}, PRIVATE_FIELDS)
    if not student:
        raise NotFoundError("User not found")

    points = student.get("totalPoints", 0) or 0
    ahead = await db.users.count_documents({"totalPoints": {"$gt": points}})
    student["rank"] = ahead + 1
    return serialize_mongo(student)


async def update_profile(db: AsyncIOMotorDatabase, student: dict, data: ProfileUpdateRequest) -> dict:
    """
    Raises:
        ValidationError: Name too short, bad year or section
    """
    updates = {}

    if data.name is not None:
        if len(data.name.strip()) < 2:
            raise ValidationError("Name must be at least 2 characters long")
        updates["name"] = data.name.strip()

    if data.year is not None:
        if data.year not in [y.value for y in StudyYear]:
            raise ValidationError("Year must be I, II, III, or IV")
        updates["year"] = data.year

    if data.section is not None:
        if data.section not in SECTIONS:
            raise ValidationError("Invalid section")
        updates["section"] = data.section

    if data.socialLinks:
        for key, value in data.socialLinks.items():
            updates[f"socialLinks.{key}"] = value

    updates["updatedAt"] = datetime.utcnow()
    await db.users.update_one({"_id": student["_id"]}, {"$set": updates})

    updated = await db.users.find_one({"_id": student["_id"]}, PRIVATE_FIELDS)
    return {
        "name": updated.get("name"),
        "email": updated.get("email"),
        "rollNumber": updated.get("rollNumber"),
        "department": updated.get("department"),
        "section": updated.get("section"),
        "year": updated.get("year"),
        "socialLinks": updated.get("socialLinks", {}),
    }


async def set_profile_file(db: AsyncIOMotorDatabase, student_oid, field: str, file_url: str) -> dict:
    await db.users.update_one(
        {"_id": student_oid},
        {"$set": {field: file_url, "updatedAt": datetime.utcnow()}}
    )
    updated = await db.users.find_one({"_id": student_oid}, PRIVATE_FIELDS)
    return serialize_mongo(updated)

# ==================== RANKING ====================

def _filters(year: Optional[str], department: Optional[str]) -> dict:
    query = {}
    if year:
        query["year"] = year
    if department:
        query["department"] = department
    return query


async def get_leaderboard(
    db: AsyncIOMotorDatabase,
    year: Optional[str] = None,
    department: Optional[str] = None
) -> List[dict]:
    """
    Top students by points, ties broken by earliest registration
    """
    cursor = db.users.find(_filters(year, department), LEADERBOARD_FIELDS) \
        .sort(LEADERBOARD_SORT) \
        .limit(LEADERBOARD_LIMIT)
    students = await cursor.to_list(length=LEADERBOARD_LIMIT)

    # Inject rank after sorting
    for index, student in enumerate(students):
        student["totalPoints"] = student.get("totalPoints") or 0
        student["rank"] = index + 1

    return serialize_many(students)


async def get_student_rank(
    db: AsyncIOMotorDatabase,
    student_oid,
    year: Optional[str] = None,
    department: Optional[str] = None
) -> dict:
    """
    Rank within the same ordering the leaderboard uses, defaulting the
    filters to the student's own year and department
    """
    student = await db.users.find_one(
        {"_id": student_oid},
        {"name": 1, "rollNumber": 1, "totalPoints": 1, "year": 1, "department": 1}
    )
    if not student:
        raise NotFoundError("User not found")

    query = _filters(year or student.get("year"), department or student.get("department"))
    ordered = await db.users.find(query, {"_id": 1}).sort(LEADERBOARD_SORT).to_list(length=None)

    position = next((i for i, s in enumerate(ordered) if s["_id"] == student["_id"]), -1)
    rank = position + 1
    total = len(ordered)
    percentile = int((total - rank + 1) / total * 100 + 0.5) if total > 0 else 0

    return {
        "rank": rank,
        "totalStudents": total,
        "percentile": percentile,
        "totalPoints": student.get("totalPoints") or 0,
        "name": student.get("name"),
        "rollNumber": student.get("rollNumber"),
        "year": student.get("year"),
        "department": student.get("department"),
    }


async def get_student_by_id(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    """
    Student with populated achievements (admin view)

    Raises:
        NotFoundError: Unknown student
    """
    student_oid = to_object_id(student_id)
    student = await db.users.find_one({"_id": student_oid}, PRIVATE_FIELDS) if student_oid else None
    if not student:
        raise NotFoundError("Student not found")

    student["achievements"] = await db.achievements.find(
        {"student": student_oid},
        {"title": 1, "description": 1, "category": 1, "level": 1, "status": 1,
         "points": 1, "proofFiles": 1, "createdAt": 1}
    ).sort("createdAt", -1).to_list(length=None)

    return serialize_mongo(student)
