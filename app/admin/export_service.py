"""
Student export
CSV of selected student fields plus the certificate files, packed into one ZIP
"""

import io
import logging
import os
import re
import zipfile
from datetime import datetime
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from app.achievements.achievement_models import AchievementStatus
from app.files.file_utils import base_filename, resolve_upload

logger = logging.getLogger(__name__)

ALL = "All"
WITH_ACHIEVEMENTS = "withAchievements"
CSV_NAME = "students_achievements.csv"
CERTIFICATES_DIR = "certificates"

FIELD_LABELS = {
    "name": "Name",
    "rollNumber": "Roll Number",
    "email": "Email",
    "department": "Department",
    "section": "Section",
    "year": "Year",
    "academicBatch": "Academic Batch",
    "admissionYear": "Admission Year",
    "graduationYear": "Graduation Year",
    "totalPoints": "Total Points",
    "totalAchievements": "Total Achievements",
    "approvedAchievements": "Approved Achievements",
    "pendingAchievements": "Pending Achievements",
    "rejectedAchievements": "Rejected Achievements",
    "phoneNumber": "Phone Number",
    "gender": "Gender",
    "dateOfBirth": "Date of Birth",
    "bloodGroup": "Blood Group",
    "currentSemester": "Current Semester",
    "overallCGPA": "Overall CGPA",
    "erpStatus": "ERP Status",
    "fatherName": "Father Name",
    "motherName": "Mother Name",
    "accommodationType": "Accommodation Type",
    "address": "Address",
    "profilePicUrl": "Profile Picture URL",
    "bannerUrl": "Banner URL",
    "resumeUrl": "Resume URL",
    "linkedin": "LinkedIn",
    "github": "GitHub",
    "leetcode": "LeetCode",
    "codechef": "CodeChef",
    "portfolio": "Portfolio",
    "createdAt": "Created At",
    "updatedAt": "Updated At",
    "achievementDetails": "Achievement Details",
    "achievementTitles": "Achievement Titles",
    "achievementCategories": "Achievement Categories",
    "achievementPoints": "Achievement Points",
    "achievementCertificateUrls": "Achievement Certificate URLs",
    "achievementStatuses": "Achievement Statuses",
}

DEFAULT_FIELDS = ["name", "rollNumber", "email", "department", "section", "year", "totalPoints", "totalAchievements"]


class ExportFilters(BaseModel):
    department: Optional[str] = None
    section: Optional[str] = None
    year: Optional[str] = None
    academicBatch: Optional[str] = None
    admissionYear: Optional[str] = None
    searchQuery: Optional[str] = None
    filterType: Optional[str] = None


class ExportRequest(BaseModel):
    filters: ExportFilters = ExportFilters()
    selectedFields: Dict[str, bool] = {}


def escape_csv(value) -> str:
    """Quote values containing comma, newline or double quote"""
    if value is None:
        return ""
    text = str(value)
    if "," in text or "\n" in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def sanitize_title(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", title or "")


def export_filename(now: Optional[datetime] = None) -> str:
    return f"students_export_{(now or datetime.utcnow()).strftime('%Y-%m-%d')}.zip"


def build_student_query(filters: ExportFilters) -> Dict:
    query = {}
    for key in ("department", "section", "year", "academicBatch"):
        value = getattr(filters, key)
        if value and value != ALL:
            query[key] = value

    if filters.admissionYear and filters.admissionYear != ALL:
        try:
            query["admissionYear"] = int(filters.admissionYear)
        except ValueError:
            query["admissionYear"] = filters.admissionYear

    if filters.searchQuery:
        pattern = {"$regex": re.escape(filters.searchQuery), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"email": pattern}, {"rollNumber": pattern}]

    return query


def _format_datetime(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value) if value else ""


def _format_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return str(value) if value else ""


def _format_address(erp: dict) -> str:
    address = erp.get("address") or erp.get("permanentAddress")
    if isinstance(address, dict):
        return f"{address.get('street', '')}, {address.get('city', '')}, " \
               f"{address.get('state', '')} {address.get('pincode', '')}".strip()
    return address or ""


def _joined(achievements: List[dict], render) -> str:
    return " | ".join(str(render(a)) for a in achievements)


def get_field_value(student: dict, field: str, included: List[dict]):
    """
    Value of one export column

    Args:
        student: user document with `achievements` (all, as documents) and `erp` (dict or None)
        included: achievements that belong in per-achievement columns
    """
    achievements = student.get("achievements") or []
    erp = student.get("erp") or {}
    social = student.get("socialLinks") or {}

    def count(status: AchievementStatus) -> int:
        return len([a for a in achievements if a.get("status") == status.value])

    computed = {
        "totalPoints": student.get("totalPoints") or 0,
        "totalAchievements": len(achievements),
        "approvedAchievements": count(AchievementStatus.APPROVED),
        "pendingAchievements": count(AchievementStatus.PENDING),
        "rejectedAchievements": count(AchievementStatus.REJECTED),
        "phoneNumber": erp.get("phoneNumber", ""),
        "gender": erp.get("gender", ""),
        "dateOfBirth": _format_date(erp.get("dateOfBirth")),
        "bloodGroup": erp.get("bloodGroup", ""),
        "currentSemester": erp.get("currentSemester", ""),
        "overallCGPA": erp.get("overallCGPA", ""),
        "erpStatus": erp.get("status", ""),
        "fatherName": erp.get("fatherName", ""),
        "motherName": erp.get("motherName", ""),
        "accommodationType": erp.get("accommodationType", ""),
        "address": _format_address(erp),
        "linkedin": social.get("linkedin", ""),
        "github": social.get("github", ""),
        "leetcode": social.get("leetcode", ""),
        "codechef": social.get("codechef", ""),
        "portfolio": social.get("portfolio", ""),
        "createdAt": _format_datetime(student.get("createdAt")),
        "updatedAt": _format_datetime(student.get("updatedAt")),
        "achievementDetails": _joined(
            included, lambda a: f"{a.get('title')} ({a.get('category')}) - {a.get('points', 0)} pts - {a.get('status')}"
        ),
        "achievementTitles": _joined(included, lambda a: a.get("title")),
        "achievementCategories": _joined(included, lambda a: a.get("category")),
        "achievementPoints": _joined(included, lambda a: a.get("points", 0)),
        "achievementCertificateUrls": _joined(included, lambda a: " ; ".join(a.get("proofFiles") or []) or "N/A"),
        "achievementStatuses": _joined(included, lambda a: a.get("status")),
    }

    if field in computed:
        return computed[field]
    return student.get(field, "")


def included_achievements(student: dict, filter_type: Optional[str]) -> List[dict]:
    achievements = student.get("achievements") or []
    if filter_type == WITH_ACHIEVEMENTS:
        return [a for a in achievements if a.get("status") == AchievementStatus.APPROVED.value]
    return achievements


def build_csv(students: List[dict], fields: List[str], filter_type: Optional[str]) -> str:
    header = ",".join(FIELD_LABELS.get(key, key) for key in fields)
    rows = [
        ",".join(
            escape_csv(get_field_value(student, key, included_achievements(student, filter_type)))
            for key in fields
        )
        for student in students
    ]
    return "\n".join([header] + rows)


def build_zip(students: List[dict], fields: List[str], filter_type: Optional[str]) -> bytes:
    """
    Returns:
        bytes: ZIP with the CSV at the root and proof files under certificates/
    """
    buffer = io.BytesIO()
    files_added = 0
    files_missing = 0

    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        archive.writestr(CSV_NAME, build_csv(students, fields, filter_type))

        for student in students:
            for achievement in included_achievements(student, filter_type):
                sanitized = sanitize_title(achievement.get("title"))
                for index, file_ref in enumerate(achievement.get("proofFiles") or [], start=1):
                    path = resolve_upload(file_ref)
                    if not os.path.isfile(path):
                        logger.warning("File not found for export: %s", path)
                        files_missing += 1
                        continue

                    ext = os.path.splitext(base_filename(file_ref))[1]
                    name = f"{CERTIFICATES_DIR}/{student.get('rollNumber')}_{sanitized}_{index}{ext}"
                    archive.write(path, name)
                    files_added += 1

    logger.info("Export built: %s students, %s files added, %s missing", len(students), files_added, files_missing)
    return buffer.getvalue()


async def fetch_export_students(db: AsyncIOMotorDatabase, filters: ExportFilters) -> List[dict]:
    """Students matching the filters with achievements and ERP attached"""
    students = await db.users.find(build_student_query(filters), {"passwordHash": 0}).to_list(length=None)
    student_ids = [s["_id"] for s in students]

    achievements = await db.achievements.find({"student": {"$in": student_ids}}).to_list(length=None)
    by_student: Dict = {}
    for achievement in achievements:
        by_student.setdefault(achievement["student"], []).append(achievement)

    erps = await db.erps.find({"student": {"$in": student_ids}}).to_list(length=None)
    erp_map = {e["student"]: e for e in erps}

    for student in students:
        student["achievements"] = by_student.get(student["_id"], [])
        student["erp"] = erp_map.get(student["_id"])

    return students


def selected_field_keys(selected: Dict[str, bool]) -> List[str]:
    keys = [key for key, enabled in selected.items() if enabled]
    return keys or list(DEFAULT_FIELDS)
