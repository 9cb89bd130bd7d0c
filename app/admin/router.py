"""
Complete Admin API Router
Achievement review, students, analytics, ERP verification and exports
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from app.achievements import achievement_service
from app.achievements.achievement_models import ReviewAction, ReviewRequest
from app.admin import dashboard_service, export_service
from app.admin.admin_auth import AdminContext, authenticate_admin, get_current_admin
from app.core import config
from app.core.audit import get_audit_trail, log_audit
from app.core.database import get_db, serialize_many
from app.core.errors import PortalError, to_http
from app.erp import erp_service
from app.erp.erp_models import ERPAction, ERPStatus, ERPStatusRequest
from app.erp.erp_router import queue_erp_email
from app.notifications.email_service import get_email_service
from app.points.points_service import adjust_points
from app.students import student_service
from app.validation.certificate_analyzer import certificate_analyzer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


# ============================================================================
# PYDANTIC MODELS
# ============================================================================

class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class PointsAdjustRequest(BaseModel):
    delta: int = 0


class AnalyzeCertificateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None


class TestEmailRequest(BaseModel):
    testEmail: Optional[str] = None


# ============================================================================
# AUTHENTICATION ENDPOINTS
# ============================================================================

@router.post("/login")
async def admin_login(credentials: LoginRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    """
    Admin login - Returns JWT token signed with ADMIN_JWT_SECRET
    """
    if not credentials.username or not credentials.password:
        raise HTTPException(status_code=400, detail="Missing")

    result = await authenticate_admin(db, credentials.username, credentials.password)
    if not result:
        logger.info("Admin login failed for %s", credentials.username)
        raise HTTPException(status_code=401, detail="Invalid")

    return result


# ============================================================================
# ACHIEVEMENT REVIEW
# ============================================================================

@router.get("/achievements")
async def list_achievements(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await achievement_service.list_achievements_for_admin(
            db, status=status, category=category, year=year
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/achievements/{achievement_id}/review")
async def review_achievement(
    achievement_id: str,
    data: ReviewRequest,
    background_tasks: BackgroundTasks,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Approve (awarding points once) or reject an achievement

    `points` overrides the calculated value on approval.
    """
    email_service = get_email_service()

    try:
        if data.action == ReviewAction.APPROVE.value:
            result = await achievement_service.approve_achievement(
                db, achievement_id, custom_points=data.points, admin_note=data.adminNote
            )
            await log_audit(db, admin, "approve_achievement", "achievement", achievement_id, {
                "points": result["pointsAwarded"]
            })

            student = result["student"]
            if student.get("email"):
                background_tasks.add_task(
                    email_service.send_approval_email,
                    student["email"], student.get("name"), result["achievement"].get("title"),
                    result["pointsAwarded"], data.adminNote
                )

            return {
                "message": "Approved",
                "achievement": result["achievement"],
                "totalPoints": result["totalPoints"],
                "emailQueued": bool(student.get("email"))
            }

        if data.action == ReviewAction.REJECT.value:
            result = await achievement_service.reject_achievement(db, achievement_id, admin_note=data.adminNote)
            await log_audit(db, admin, "reject_achievement", "achievement", achievement_id)

            student = result["student"]
            if student and student.get("email"):
                background_tasks.add_task(
                    email_service.send_rejection_email,
                    student["email"], student.get("name"), result["achievement"].get("title"), data.adminNote
                )

            return {
                "message": "Rejected",
                "achievement": result["achievement"],
                "emailQueued": bool(student and student.get("email"))
            }

        raise HTTPException(status_code=400, detail="Invalid action")

    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/achievements/{achievement_id}/highlight")
async def toggle_highlight(
    achievement_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        highlighted = await achievement_service.toggle_highlight(db, achievement_id)
        await log_audit(db, admin, "toggle_highlight", "achievement", achievement_id, {"highlighted": highlighted})
        return {"message": "Toggled", "highlighted": highlighted}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/achievements/{achievement_id}")
async def delete_achievement(
    achievement_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        achievement = await achievement_service.admin_delete_achievement(db, achievement_id)
        await log_audit(db, admin, "delete_achievement", "achievement", achievement_id, {
            "student": str(achievement.get("student")),
            "status": achievement.get("status")
        })
        return {"message": "Deleted by admin"}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/achievements/{achievement_id}/validate-certificate")
async def validate_certificate(
    achievement_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        result = await achievement_service.validate_achievement_certificate(db, achievement_id)
        return {"message": "Certificate validation completed", **result}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Validation failed", "error": str(e)})


# ============================================================================
# STUDENTS & POINTS
# ============================================================================

@router.put("/students/{student_id}/points")
async def adjust_student_points(
    student_id: str,
    data: PointsAdjustRequest,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Manual adjustment, total floored at 0"""
    try:
        total = await adjust_points(db, student_id, data.delta)
        await log_audit(db, admin, "adjust_points", "student", student_id, {"delta": data.delta, "totalPoints": total})
        return {"message": "Adjusted", "totalPoints": total}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/students")
async def list_students(
    year: Optional[str] = Query(None),
    academicBatch: Optional[str] = Query(None),
    admissionYear: Optional[int] = Query(None),
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await dashboard_service.list_students(
            db, year=year, academic_batch=academicBatch, admission_year=admissionYear
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/students/{student_id}")
async def get_student(
    student_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return {"student": await student_service.get_student_by_id(db, student_id)}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# DASHBOARD & ANALYTICS
# ============================================================================

@router.get("/analytics")
async def analytics(
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await dashboard_service.get_analytics(db)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/dashboard-stats")
async def dashboard_stats(
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await dashboard_service.get_dashboard_stats(db)
    except Exception as e:
        logger.error("Dashboard stats error: %s", e)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/analyze-certificate")
async def analyze_certificate(
    data: AnalyzeCertificateRequest,
    admin: AdminContext = Depends(get_current_admin)
):
    """Credibility assessment from title/description (Gemini, else pattern-based)"""
    if not data.title or not data.category:
        raise HTTPException(status_code=400, detail="Title and category are required")

    try:
        analysis = await certificate_analyzer.analyze(data.title, data.description, data.category, data.level)
        return {"success": True, "analysis": analysis}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/test-email")
async def test_email(
    data: Optional[TestEmailRequest] = None,
    admin: AdminContext = Depends(get_current_admin)
):
    """Send a sample approval email to check SMTP settings"""
    email_service = get_email_service()
    if not email_service.is_configured:
        raise HTTPException(status_code=400, detail={
            "success": False,
            "message": "Email credentials not configured",
            "configured": {
                "EMAIL_USER": bool(config.EMAIL_USER),
                "EMAIL_PASSWORD": bool(config.EMAIL_PASSWORD)
            }
        })

    recipient = (data.testEmail if data else None) or config.EMAIL_USER
    result = await run_in_threadpool(
        email_service.send_approval_email,
        recipient,
        "Test User",
        "Test Achievement - Email Configuration Check",
        100,
        "This is a test email to verify your email configuration is working correctly."
    )

    if not result.get("success"):
        raise HTTPException(status_code=500, detail={
            "success": False,
            "message": "Failed to send test email",
            "error": result.get("error") or result.get("message")
        })

    return {
        "success": True,
        "message": "Test email sent successfully! Check your inbox (and spam folder).",
        "emailSent": True,
        "sentTo": recipient,
        "messageId": result.get("messageId")
    }


# ============================================================================
# ERP MANAGEMENT
# ============================================================================

@router.get("/erps")
async def list_erps(
    status: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    academicBatch: Optional[str] = Query(None),
    admissionYear: Optional[int] = Query(None),
    department: Optional[str] = Query(None),
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await erp_service.list_erps(
            db, status=status, year=year, academic_batch=academicBatch,
            admission_year=admissionYear, department=department
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/erps/{erp_id}")
async def get_erp(
    erp_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await erp_service.get_erp_by_id(db, erp_id)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/erps/{erp_id}/verify")
async def verify_erp(
    erp_id: str,
    data: ERPStatusRequest,
    background_tasks: BackgroundTasks,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Body status is 'verified' or 'rejected'"""
    actions = {ERPStatus.VERIFIED.value: ERPAction.VERIFY.value, ERPStatus.REJECTED.value: ERPAction.REJECT.value}
    action = actions.get(data.status)
    if not action:
        raise HTTPException(status_code=400, detail="Status must be 'verified' or 'rejected'")

    try:
        result = await erp_service.review_erp(
            db, erp_id, action, admin.admin_id, points=data.points, admin_note=data.adminNote
        )
        await log_audit(db, admin, f"{action}_erp", "erp", erp_id, {"points": data.points})
        queue_erp_email(background_tasks, result, action, data.adminNote)

        return {
            "message": f"ERP {data.status} successfully",
            "erp": await erp_service.get_erp_by_id(db, erp_id),
            "studentPoints": result["studentPoints"]
        }
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# EXPORT & AUDIT
# ============================================================================

@router.post("/export-zip")
async def export_zip(
    data: export_service.ExportRequest,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    ZIP with students_achievements.csv and certificates/<roll>_<title>_<n><ext>
    """
    try:
        students = await export_service.fetch_export_students(db, data.filters)
        fields = export_service.selected_field_keys(data.selectedFields)
        content = await run_in_threadpool(
            export_service.build_zip, students, fields, data.filters.filterType
        )
        await log_audit(db, admin, "export_students", "export", "students_zip", {
            "students": len(students),
            "fields": fields
        })
    except Exception as e:
        logger.error("Export error: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return StreamingResponse(
        iter([content]),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{export_service.export_filename()}"'}
    )


@router.get("/audit-logs")
async def audit_logs(
    target_type: Optional[str] = Query(None),
    target_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> Dict:
    logs = await get_audit_trail(db, target_type=target_type, target_id=target_id, limit=limit)
    return {"logs": serialize_many(logs), "total": len(logs)}
