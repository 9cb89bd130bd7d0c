from typing import Dict, Optional, Union

from pydantic import BaseModel

# ==================== REQUEST SCHEMAS ====================

class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    rollNumber: Optional[str] = None
    password: Optional[str] = None
    department: Optional[str] = None
    section: Optional[str] = None
    year: Optional[str] = None
    admissionYear: Optional[Union[int, str]] = None


class LoginRequest(BaseModel):
    """`email` may carry either the email or the roll number"""
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    year: Optional[str] = None
    section: Optional[str] = None
    socialLinks: Optional[Dict[str, str]] = None

# ==================== RESPONSE SCHEMAS ====================

class RankResponse(BaseModel):
    rank: int
    totalStudents: int
    percentile: int
    totalPoints: int
    name: Optional[str] = None
    rollNumber: Optional[str] = None
    year: Optional[str] = None
    department: Optional[str] = None
