"""
ERP profile service
Draft creation, student edits, submission and admin verification
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as SchemaError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.database import serialize_mongo, serialize_many, to_object_id
from app.core.errors import NotFoundError, ValidationError
from app.erp.erp_models import (
    ERPAction,
    ERPRecord,
    ERPStatus,
    IMMUTABLE_FIELDS,
    PROTECTED_FIELDS,
    Semester,
    compute_cgpa,
    current_academic_year,
    is_valid_phone,
    map_scholarship_basis,
)
from app.points.points_service import add_points

logger = logging.getLogger(__name__)

ERP_STUDENT_FIELDS = {
    "name": 1, "rollNumber": 1, "email": 1, "section": 1, "year": 1, "department": 1,
    "totalPoints": 1, "academicBatch": 1, "admissionYear": 1, "graduationYear": 1,
}


def _sorted_options(values) -> List:
    return sorted([v for v in values if v], reverse=True)


async def _populate_student(db: AsyncIOMotorDatabase, erp: dict, fields: Dict) -> dict:
    student = await db.users.find_one({"_id": erp.get("student")}, fields)
    if student:
        erp["student"] = student
    return erp


async def _get_by_id_or_404(db: AsyncIOMotorDatabase, erp_id: str) -> dict:
    erp_oid = to_object_id(erp_id)
    erp = await db.erps.find_one({"_id": erp_oid}) if erp_oid else None
    if not erp:
        raise NotFoundError("ERP not found")
    return erp

# ==================== STUDENT ====================

async def get_or_create_erp(db: AsyncIOMotorDatabase, student: dict) -> dict:
    """
    Return the student's ERP, creating a draft on first access
    """
    erp = await db.erps.find_one({"student": student["_id"]})
    if erp:
        return serialize_mongo(erp)

    record = ERPRecord(
        student=student["_id"],
        admissionYear=student.get("admissionYear"),
        graduationYear=student.get("graduationYear"),
        academicBatch=student.get("academicBatch"),
        currentAcademicYear=current_academic_year(),
    )
    document = record.dict()

    try:
        result = await db.erps.insert_one(document)
        document["_id"] = result.inserted_id
    except DuplicateKeyError:
        # Concurrent first access created it already
        document = await db.erps.find_one({"student": student["_id"]})

    logger.info("Created draft ERP for student %s", student["_id"])
    return serialize_mongo(document)


def _clean_updates(data: Dict) -> Dict:
    """
    Drop protected keys, validate semesters and recompute CGPA

    Raises:
        ValidationError: Malformed semester details
    """
    updates = {
        key: value for key, value in data.items()
        if key not in PROTECTED_FIELDS and key not in IMMUTABLE_FIELDS
    }

    if "semesters" in updates:
        try:
            semesters = [Semester(**s).dict() for s in (updates["semesters"] or [])]
        except (SchemaError, TypeError):
            raise ValidationError("Invalid semester details")
        updates["semesters"] = semesters
        updates["overallCGPA"] = compute_cgpa(semesters)

    updates["updatedAt"] = datetime.utcnow()
    return updates


async def _load_editable(db: AsyncIOMotorDatabase, student_oid) -> dict:
    erp = await db.erps.find_one({"student": student_oid})
    if not erp:
        raise NotFoundError("ERP not found")
    if erp.get("status") == ERPStatus.VERIFIED.value:
        raise ValidationError("Cannot update verified ERP. Contact admin.")
    return erp


async def update_erp(db: AsyncIOMotorDatabase, student_oid, data: Dict) -> dict:
    """
    Partial update of the student's own ERP

    Raises:
        NotFoundError: No ERP yet
        ValidationError: ERP already verified
    """
    erp = await _load_editable(db, student_oid)
    updated = await db.erps.find_one_and_update(
        {"_id": erp["_id"]},
        {"$set": _clean_updates(data)},
        return_document=ReturnDocument.AFTER
    )
    return serialize_mongo(updated)


async def update_personal_info(
    db: AsyncIOMotorDatabase,
    student_oid,
    personal_data: Dict,
    proof_urls: Dict[str, str]
) -> dict:
    """
    Personal section update with optional proof documents

    Args:
        personal_data: Parsed `personalData` JSON from the form
        proof_urls: e.g. {"scholarshipProofUrl": "/uploads/..."}
    """
    erp = await _load_editable(db, student_oid)

    data = dict(personal_data)
    if data.get("scholarshipBasis"):
        data["scholarshipBasis"] = map_scholarship_basis(data["scholarshipBasis"])
    data.pop("scholarshipType", None)  # deprecated
    data.update(proof_urls)

    updated = await db.erps.find_one_and_update(
        {"_id": erp["_id"]},
        {"$set": _clean_updates(data)},
        return_document=ReturnDocument.AFTER
    )
    return serialize_mongo(updated)


async def submit_erp(db: AsyncIOMotorDatabase, student_oid) -> dict:
    """
    Raises:
        NotFoundError: No ERP yet
        ValidationError: Placeholder phone or no semesters
    """
    erp = await db.erps.find_one({"student": student_oid})
    if not erp:
        raise NotFoundError("ERP not found")

    if not is_valid_phone(erp.get("phoneNumber")):
        raise ValidationError("Please provide a valid phone number")

    if not erp.get("semesters"):
        raise ValidationError("Please add at least one semester's academic details")

    updated = await db.erps.find_one_and_update(
        {"_id": erp["_id"]},
        {"$set": {
            "status": ERPStatus.SUBMITTED.value,
            "submittedAt": datetime.utcnow(),
            "updatedAt": datetime.utcnow()
        }},
        return_document=ReturnDocument.AFTER
    )
    return serialize_mongo(updated)

# ==================== ADMIN ====================

async def list_erps(
    db: AsyncIOMotorDatabase,
    status: Optional[str] = None,
    year: Optional[str] = None,
    academic_batch: Optional[str] = None,
    admission_year: Optional[int] = None,
    department: Optional[str] = None
) -> Dict:
    """
    ERPs filtered by status and by the owning student's attributes
    """
    student_query = {}
    if year:
        student_query["year"] = year
    if academic_batch:
        student_query["academicBatch"] = academic_batch
    if admission_year:
        student_query["admissionYear"] = admission_year
    if department:
        student_query["department"] = department

    erp_query = {}
    if status:
        erp_query["status"] = status
    if student_query:
        students = await db.users.find(student_query, {"_id": 1}).to_list(length=None)
        erp_query["student"] = {"$in": [s["_id"] for s in students]}

    erps = await db.erps.find(erp_query) \
        .sort([("submittedAt", -1), ("createdAt", -1)]) \
        .to_list(length=None)

    student_ids = [e["student"] for e in erps]
    students = await db.users.find({"_id": {"$in": student_ids}}, ERP_STUDENT_FIELDS).to_list(length=None)
    by_id = {s["_id"]: s for s in students}
    for erp in erps:
        erp["student"] = by_id.get(erp["student"], erp["student"])

    return {
        "erps": serialize_many(erps),
        "total": len(erps),
        "filterOptions": {
            "academicBatches": _sorted_options(await db.users.distinct("academicBatch")),
            "admissionYears": _sorted_options(await db.users.distinct("admissionYear")),
        }
    }


async def get_erp_for_student(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    student_oid = to_object_id(student_id)
    erp = await db.erps.find_one({"student": student_oid}) if student_oid else None
    if not erp:
        raise NotFoundError("ERP not found for this student")

    await _populate_student(db, erp, {
        "name": 1, "rollNumber": 1, "email": 1, "section": 1, "year": 1, "totalPoints": 1, "profilePicUrl": 1
    })
    return serialize_mongo(erp)


async def get_erp_by_id(db: AsyncIOMotorDatabase, erp_id: str) -> dict:
    erp = await _get_by_id_or_404(db, erp_id)
    await _populate_student(db, erp, {"name": 1, "rollNumber": 1, "section": 1, "year": 1, "email": 1})
    return serialize_mongo(erp)


async def review_erp(
    db: AsyncIOMotorDatabase,
    erp_id: str,
    action: str,
    admin_id: str,
    points: Optional[int] = None,
    admin_note: Optional[str] = ""
) -> Dict:
    """
    Verify or reject an ERP

    Verification sets erpPoints and awards only the difference from the
    previously stored erpPoints, so re-verifying never double-counts.
    points=None keeps the stored erpPoints. Rejection leaves points alone.

    Raises:
        NotFoundError: Unknown ERP
        ValidationError: Unknown action

    Returns:
        dict: erp, studentPoints (None on reject), student (name/email)
    """
    if action not in (ERPAction.VERIFY.value, ERPAction.REJECT.value):
        raise ValidationError("Invalid action. Use 'verify' or 'reject'")

    erp = await _get_by_id_or_404(db, erp_id)
    student = await db.users.find_one({"_id": erp["student"]}, {"name": 1, "email": 1, "totalPoints": 1})

    now = datetime.utcnow()
    student_points = None

    if action == ERPAction.VERIFY.value:
        previous = erp.get("erpPoints") or 0
        new_points = previous if points is None else int(points or 0)

        updates = {
            "status": ERPStatus.VERIFIED.value,
            "verifiedAt": now,
            "verifiedBy": admin_id,
            "erpPoints": new_points,
            "adminNote": admin_note,
            "updatedAt": now,
        }
        await db.erps.update_one({"_id": erp["_id"]}, {"$set": updates})

        delta = new_points - previous
        if delta and student:
            student_points = await add_points(db, erp["student"], delta)
        elif student:
            student_points = student.get("totalPoints", 0) or 0
    else:
        updates = {
            "status": ERPStatus.REJECTED.value,
            "verifiedBy": admin_id,
            "adminNote": admin_note,
            "updatedAt": now,
        }
        await db.erps.update_one({"_id": erp["_id"]}, {"$set": updates})

    erp.update(updates)
    logger.info("ERP %s %s by admin %s", erp_id, updates["status"], admin_id)

    return {
        "erp": serialize_mongo(erp),
        "studentPoints": student_points,
        "student": {"name": student.get("name"), "email": student.get("email")} if student else None
    }


async def update_erp_points(db: AsyncIOMotorDatabase, erp_id: str, points: int) -> Dict:
    """
    Set erpPoints and move the student's total by the difference

    Raises:
        NotFoundError: Unknown ERP or student
    """
    erp = await _get_by_id_or_404(db, erp_id)
    previous = erp.get("erpPoints") or 0
    new_points = int(points or 0)

    await db.erps.update_one(
        {"_id": erp["_id"]},
        {"$set": {"erpPoints": new_points, "updatedAt": datetime.utcnow()}}
    )
    student_points = await add_points(db, erp["student"], new_points - previous)

    erp["erpPoints"] = new_points
    return {"erp": serialize_mongo(erp), "studentPoints": student_points}
