from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class StudyYear(str, Enum):
    I = "I"
    II = "II"
    III = "III"
    IV = "IV"


SECTIONS = tuple("ABCDEFGHIJKLMNOPQRS")

MIN_ADMISSION_YEAR = 2020
PROGRAM_LENGTH_YEARS = 4

# Fields never returned to clients
PRIVATE_FIELDS = {"passwordHash": 0}

LEADERBOARD_FIELDS = {
    "name": 1, "rollNumber": 1, "department": 1, "section": 1,
    "year": 1, "totalPoints": 1, "profilePicUrl": 1,
}

# ==================== DATABASE MODELS ====================

class SocialLinks(BaseModel):
    linkedin: str = ""
    github: str = ""
    leetcode: str = ""
    codechef: str = ""
    portfolio: str = ""


class StudentRecord(BaseModel):
    """
    Document stored in `users`
    totalPoints is maintained incrementally by the points service
    """
    name: str
    email: str
    rollNumber: str
    passwordHash: str
    department: str
    section: str
    year: StudyYear
    admissionYear: int
    graduationYear: int
    academicBatch: str  # "2023-2027"
    totalPoints: int = 0
    achievements: List[ObjectId] = []
    profilePicUrl: Optional[str] = None
    bannerUrl: Optional[str] = None
    resumeUrl: Optional[str] = None
    socialLinks: SocialLinks = Field(default_factory=SocialLinks)
    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        arbitrary_types_allowed = True
        use_enum_values = True
