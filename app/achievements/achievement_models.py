from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class AchievementType(str, Enum):
    CERTIFICATION = "Certification"
    COMPETITION = "Competition"


class AchievementCategory(str, Enum):
    TECHNICAL = "Technical"
    NON_TECHNICAL = "Non-technical"


class AchievementLevel(str, Enum):
    """Ordered lowest to highest"""
    DEPARTMENT = "Department"
    COLLEGE = "College"
    DISTRICT = "District"
    STATE = "State"
    NATIONAL = "National"
    INTERNATIONAL = "International"


class Award(str, Enum):
    FIRST = "1"
    SECOND = "2"
    THIRD = "3"
    RUNNER = "runner"
    PARTICIPATION = "participation"


class AchievementStatus(str, Enum):
    """pending -> approved | rejected"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

# ==================== DATABASE MODELS ====================

class AchievementLinks(BaseModel):
    leetcode: str = ""
    linkedin: str = ""
    codechef: str = ""


class AchievementRecord(BaseModel):
    """
    Document stored in `achievements`
    points stays 0 until an admin approves
    """
    student: ObjectId
    title: str
    achievementType: AchievementType
    description: Optional[str] = None
    category: AchievementCategory
    subCategory: Optional[str] = None  # Non-technical only
    dateOfIssue: str
    organizedInstitute: str
    level: AchievementLevel
    award: Optional[Award] = None  # Competition only
    proofFiles: List[str] = []  # /uploads/<filename>
    links: AchievementLinks = Field(default_factory=AchievementLinks)
    status: AchievementStatus = AchievementStatus.PENDING
    points: int = 0
    highlighted: bool = False
    adminNote: Optional[str] = None
    suspiciousActivity: Optional[Dict] = None
    validationResult: Optional[Dict] = None
    lastValidated: Optional[datetime] = None
    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        arbitrary_types_allowed = True
        use_enum_values = True

# ==================== REQUEST SCHEMAS ====================

class ApproveRequest(BaseModel):
    adminNote: Optional[str] = None
    customPoints: Optional[int] = None


class RejectRequest(BaseModel):
    adminNote: Optional[str] = None


class ReviewRequest(BaseModel):
    action: str
    points: Optional[int] = None
    adminNote: Optional[str] = ""
