import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.achievements import achievement_service
from app.achievements.achievement_models import ApproveRequest, RejectRequest
from app.admin.admin_auth import AdminContext, get_current_admin
from app.core import config
from app.core.audit import log_audit
from app.core.database import get_db
from app.core.errors import PortalError, to_http
from app.files.file_utils import save_upload
from app.notifications.email_service import get_email_service
from app.students.student_permissions import (
    StudentContext,
    get_current_student,
    verify_achievement_ownership,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/achievements", tags=["Achievements"])

# ==================== STUDENT ====================

@router.post("/add", status_code=201)
async def add_achievement(
    title: str = Form(None),
    achievementType: str = Form(None),
    description: Optional[str] = Form(None),
    category: str = Form(None),
    subCategory: Optional[str] = Form(None),
    dateOfIssue: str = Form(None),
    organizedInstitute: str = Form(None),
    level: str = Form(None),
    award: Optional[str] = Form(None),
    leetcode: Optional[str] = Form(None),
    linkedin: Optional[str] = Form(None),
    codechef: Optional[str] = Form(None),
    proofFiles: List[UploadFile] = File(None),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Submit an achievement with up to MAX_PROOF_FILES proof files"""
    uploads = [f for f in (proofFiles or []) if f and f.filename]
    if len(uploads) > config.MAX_PROOF_FILES:
        raise HTTPException(status_code=400, detail=f"Maximum {config.MAX_PROOF_FILES} proof files allowed")

    form = {
        "title": title,
        "achievementType": achievementType,
        "description": description,
        "category": category,
        "subCategory": subCategory,
        "dateOfIssue": dateOfIssue,
        "organizedInstitute": organizedInstitute,
        "level": level,
        "award": award,
        "leetcode": leetcode,
        "linkedin": linkedin,
        "codechef": codechef,
    }

    try:
        achievement_service.validate_submission(form)
        stored_files = [await save_upload(upload, prefix="proof") for upload in uploads]
        result = await achievement_service.submit_achievement(db, student.oid, form, stored_files)

        response = {"message": "Achievement submitted", "achievement": result["achievement"]}
        if result["suspicious"]:
            response["warning"] = achievement_service.SUSPICIOUS_WARNING
        return response

    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/me")
async def my_achievements(
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await achievement_service.list_student_achievements(db, student.oid)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

# ==================== ADMIN ====================

@router.get("/admin/all")
async def admin_list_achievements(
    status: Optional[str] = Query(None),
    studentId: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await achievement_service.list_achievements_for_admin(
            db, status=status, student_id=studentId, category=category, year=year, with_file_status=True
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/admin/{achievement_id}/approve")
async def approve(
    achievement_id: str,
    background_tasks: BackgroundTasks,
    data: Optional[ApproveRequest] = None,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = data or ApproveRequest()
    try:
        result = await achievement_service.approve_achievement(
            db, achievement_id, custom_points=data.customPoints, admin_note=data.adminNote
        )
        await log_audit(db, admin, "approve_achievement", "achievement", achievement_id, {
            "points": result["pointsAwarded"]
        })

        student = result["student"]
        if student.get("email"):
            background_tasks.add_task(
                get_email_service().send_approval_email,
                student["email"], student.get("name"), result["achievement"].get("title"),
                result["pointsAwarded"], data.adminNote
            )

        return {
            "message": "Approved",
            "achievement": result["achievement"],
            "pointsAwarded": result["pointsAwarded"],
            "totalPoints": result["totalPoints"]
        }
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/admin/{achievement_id}/reject")
async def reject(
    achievement_id: str,
    background_tasks: BackgroundTasks,
    data: Optional[RejectRequest] = None,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = data or RejectRequest()
    try:
        result = await achievement_service.reject_achievement(db, achievement_id, admin_note=data.adminNote)
        await log_audit(db, admin, "reject_achievement", "achievement", achievement_id)

        student = result["student"]
        if student and student.get("email"):
            background_tasks.add_task(
                get_email_service().send_rejection_email,
                student["email"], student.get("name"), result["achievement"].get("title"), data.adminNote
            )

        return {"message": "Rejected", "achievement": result["achievement"]}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/admin/cleanup-files")
async def cleanup_files(
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        result = await achievement_service.cleanup_broken_files(db)
        await log_audit(db, admin, "cleanup_files", "achievement", "*", {
            "cleanedAchievements": result["cleanedAchievements"]
        })
        return result
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

# ==================== BY ID ====================

@router.get("/{achievement_id}")
async def get_achievement(
    achievement_id: str,
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        await verify_achievement_ownership(db, achievement_id, student)
        return await achievement_service.get_achievement(db, achievement_id)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{achievement_id}")
async def delete_achievement(
    achievement_id: str,
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        achievement = await verify_achievement_ownership(db, achievement_id, student)
        await achievement_service.delete_own_achievement(db, achievement, student.oid)
        return {"message": "Deleted"}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
