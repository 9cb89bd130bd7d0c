from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import get_db
from app.core.errors import PortalError, to_http
from app.files.file_utils import save_upload
from app.students.student_permissions import StudentContext, get_current_student
from app.students.student_schemas import LoginRequest, ProfileUpdateRequest, RegisterRequest
from app.students import student_service

router = APIRouter(prefix="/api/auth", tags=["Students"])

# ==================== AUTH ====================

@router.post("/register", status_code=201)
async def register(data: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        return await student_service.register_student(db, data)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/login")
async def login(data: LoginRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        return await student_service.login_student(db, data.email, data.password)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/me")
async def me(
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Own profile plus global rank"""
    try:
        return await student_service.get_profile_with_rank(db, student.oid)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

# ==================== LEADERBOARD ====================

@router.get("/leaderboard")
async def leaderboard(
    year: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await student_service.get_leaderboard(db, year, department)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/my-rank")
async def my_rank(
    year: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await student_service.get_student_rank(db, student.oid, year, department)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

# ==================== PROFILE ====================

@router.put("/profile")
async def update_profile(
    data: ProfileUpdateRequest,
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        user = await student_service.update_profile(db, student.profile, data)
        return {"message": "Profile updated successfully", "user": user}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


async def _upload_profile_file(
    db: AsyncIOMotorDatabase,
    student: StudentContext,
    file: Optional[UploadFile],
    field: str,
    label: str
) -> dict:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file")

    try:
        file_url = await save_upload(file, prefix=field)
        user = await student_service.set_profile_file(db, student.oid, field, file_url)
        return {"message": f"{label} uploaded", "url": file_url, "user": user}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/profile-pic")
async def upload_profile_pic(
    file: UploadFile = File(None),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return await _upload_profile_file(db, student, file, "profilePicUrl", "Profile picture")


@router.post("/banner")
async def upload_banner(
    file: UploadFile = File(None),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return await _upload_profile_file(db, student, file, "bannerUrl", "Banner")


@router.post("/resume")
async def upload_resume(
    file: UploadFile = File(None),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return await _upload_profile_file(db, student, file, "resumeUrl", "Resume")
