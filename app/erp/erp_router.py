import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, Form, HTTPException, Query, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.admin.admin_auth import AdminContext, get_current_admin
from app.core.audit import log_audit
from app.core.database import get_db
from app.core.errors import PortalError, to_http
from app.erp import erp_service
from app.erp.erp_models import ERPAction, ERPPointsRequest, ERPVerifyRequest
from app.files.file_utils import save_upload
from app.notifications.email_service import get_email_service
from app.students.student_permissions import StudentContext, get_current_student

router = APIRouter(prefix="/api/erp", tags=["ERP"])

ERP_EMAIL_TITLE = "ERP Profile"


def queue_erp_email(background_tasks: BackgroundTasks, result: dict, action: str, admin_note: Optional[str]):
    student = result.get("student")
    if not student or not student.get("email"):
        return

    service = get_email_service()
    if action == ERPAction.VERIFY.value:
        background_tasks.add_task(
            service.send_approval_email,
            student["email"], student.get("name"), ERP_EMAIL_TITLE,
            result["erp"].get("erpPoints", 0), admin_note
        )
    else:
        background_tasks.add_task(
            service.send_rejection_email,
            student["email"], student.get("name"), ERP_EMAIL_TITLE, admin_note
        )

# ==================== STUDENT ====================

@router.get("/my-erp")
async def get_my_erp(
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await erp_service.get_or_create_erp(db, student.profile)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/my-erp")
async def update_my_erp(
    data: dict = Body(...),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        erp = await erp_service.update_erp(db, student.oid, data)
        return {"message": "ERP updated successfully", "erp": erp}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/personal-info")
async def update_personal_info(
    personalData: str = Form(...),
    scholarshipProof: Optional[UploadFile] = File(None),
    tenthProof: Optional[UploadFile] = File(None),
    intermediateProof: Optional[UploadFile] = File(None),
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Personal details as a JSON form field plus optional proof documents"""
    try:
        personal_data = json.loads(personalData)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="personalData must be valid JSON")
    if not isinstance(personal_data, dict):
        raise HTTPException(status_code=400, detail="personalData must be a JSON object")

    try:
        proof_urls = {}
        for field, upload in (
            ("scholarshipProofUrl", scholarshipProof),
            ("tenthProofUrl", tenthProof),
            ("intermediateProofUrl", intermediateProof),
        ):
            if upload is not None and upload.filename:
                proof_urls[field] = await save_upload(upload, prefix="erp")

        erp = await erp_service.update_personal_info(db, student.oid, personal_data, proof_urls)
        return {"message": "Personal information updated successfully", "erp": erp}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e) or "Failed to update personal information")


@router.post("/my-erp/submit")
async def submit_my_erp(
    student: StudentContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        erp = await erp_service.submit_erp(db, student.oid)
        return {"message": "ERP submitted for verification", "erp": erp}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

# ==================== ADMIN ====================

@router.get("/admin/all")
async def admin_list_erps(
    status: Optional[str] = Query(None),
    academicBatch: Optional[str] = Query(None),
    admissionYear: Optional[int] = Query(None),
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await erp_service.list_erps(
            db, status=status, academic_batch=academicBatch, admission_year=admissionYear
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/admin/student/{student_id}")
async def admin_get_student_erp(
    student_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        return await erp_service.get_erp_for_student(db, student_id)
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/admin/{erp_id}/verify")
async def admin_verify_erp(
    erp_id: str,
    data: ERPVerifyRequest,
    background_tasks: BackgroundTasks,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        result = await erp_service.review_erp(
            db, erp_id, data.action, admin.admin_id,
            points=data.points or 0, admin_note=data.adminNote
        )
        await log_audit(db, admin, f"{data.action}_erp", "erp", erp_id, {"points": data.points or 0})
        queue_erp_email(background_tasks, result, data.action, data.adminNote)

        if data.action == ERPAction.VERIFY.value:
            return {
                "message": "ERP verified successfully",
                "erp": result["erp"],
                "studentPoints": result["studentPoints"]
            }
        return {"message": "ERP rejected", "erp": result["erp"]}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/admin/{erp_id}/points")
async def admin_update_erp_points(
    erp_id: str,
    data: ERPPointsRequest,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        result = await erp_service.update_erp_points(db, erp_id, data.points)
        await log_audit(db, admin, "update_erp_points", "erp", erp_id, {"points": data.points})
        return {"message": "ERP points updated", "erp": result["erp"], "studentPoints": result["studentPoints"]}
    except PortalError as e:
        raise to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
