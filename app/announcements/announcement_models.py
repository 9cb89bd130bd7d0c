from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AnnouncementPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL


class AnnouncementRecord(BaseModel):
    """Document stored in `announcements`"""
    title: str
    content: str
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    isActive: bool = True
    createdBy: Optional[str] = None
    createdAt: datetime = Field(default_factory=datetime.utcnow)
    updatedAt: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True
