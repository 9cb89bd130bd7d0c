import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

# ==================== CONSTANTS ====================

PLACEHOLDER_PHONE = "0000000000"
PHONE_PATTERN = re.compile(r"^[0-9]{10}$")

SCHOLARSHIP_BASIS_MAP = {
    "VSAT": "vsat",
    "EMECT": "emect",
    "EAMCET": "emect",
    "IPE": "ipe",
    "JEE Mains": "jee_mains",
    "JEE Advance": "jee_advance",
}

# Never writable through student updates
PROTECTED_FIELDS = {"status", "verifiedBy", "erpPoints"}
IMMUTABLE_FIELDS = {"_id", "student", "createdAt"}

# Summary fields joined onto the admin student list
STUDENT_LIST_FIELDS = {
    "student": 1, "currentSemester": 1, "overallCGPA": 1, "phoneNumber": 1, "gender": 1,
    "status": 1, "fullName": 1, "dateOfBirth": 1, "bloodGroup": 1, "fatherName": 1,
    "motherName": 1, "accommodationType": 1, "address": 1,
}

# ==================== ENUMS ====================

class ERPStatus(str, Enum):
    """draft -> submitted -> verified | rejected"""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ERPAction(str, Enum):
    VERIFY = "verify"
    REJECT = "reject"


class AccommodationType(str, Enum):
    DAY_SCHOLAR = "day_scholar"
    RESIDENTIAL = "residential"

# ==================== SUB-DOCUMENTS ====================

class Course(BaseModel):
    courseName: str
    courseCode: Optional[str] = None
    credits: Optional[float] = None
    grade: Optional[str] = None
    gpa: Optional[float] = Field(None, ge=0, le=10)


class Semester(BaseModel):
    semesterName: str  # "1-1", "2-2"
    year: int
    semesterNumber: int
    academicYear: Optional[str] = None
    courses: List[Course] = []
    sgpa: Optional[float] = Field(None, ge=0, le=10)
    totalCredits: Optional[float] = None

# ==================== DATABASE MODELS ====================

class ERPRecord(BaseModel):
    """
    Document stored in `erps`, one per student
    overallCGPA is derived from semesters on every save
    """
    student: ObjectId
    currentSemester: str = "1-1"
    currentYear: int = 1
    admissionYear: Optional[int] = None
    graduationYear: Optional[int] = None
    academicBatch: Optional[str] = None
    currentAcademicYear: Optional[str] = None
    semesters: List[Dict] = []
    overallCGPA: Optional[float] = None
    phoneNumber: str = PLACEHOLDER_PHONE
    status: ERPStatus = ERPStatus.DRAFT
    erpPoints: int = 0
    submittedAt: Optional[datetime] = None
    verifiedAt: Optional[datetime] = None
    verifiedBy: Optional[str] = None
    adminNote: Optional[str] = None
    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        arbitrary_types_allowed = True
        use_enum_values = True

# ==================== REQUEST SCHEMAS ====================

class ERPVerifyRequest(BaseModel):
    """Body for /api/erp/admin/{id}/verify"""
    action: str
    points: Optional[int] = 0
    adminNote: Optional[str] = ""


class ERPStatusRequest(BaseModel):
    """Body for /api/admin/erps/{erp_id}/verify"""
    status: str
    points: Optional[int] = None
    adminNote: Optional[str] = ""


class ERPPointsRequest(BaseModel):
    points: int = 0

# ==================== HELPERS ====================

def compute_cgpa(semesters: Optional[List[Dict]]) -> Optional[float]:
    """Mean SGPA over recorded semesters, missing SGPA counted as 0"""
    if not semesters:
        return None
    total = sum((s or {}).get("sgpa") or 0 for s in semesters)
    return round(total / len(semesters), 2)


def current_academic_year(now: Optional[datetime] = None) -> str:
    """Academic years run June to May"""
    now = now or datetime.utcnow()
    start = now.year if now.month >= 6 else now.year - 1
    return f"{start}-{start + 1}"


def map_scholarship_basis(value: str) -> str:
    return SCHOLARSHIP_BASIS_MAP.get(value, value.lower())


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(phone) and phone != PLACEHOLDER_PHONE and bool(PHONE_PATTERN.match(phone))
