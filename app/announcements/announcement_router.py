from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.admin.admin_auth import AdminContext, get_current_admin
from app.announcements.announcement_models import AnnouncementCreate, AnnouncementRecord
from app.core.audit import log_audit
from app.core.database import get_db, serialize_mongo, serialize_many, to_object_id

router = APIRouter(prefix="/api/announcements", tags=["Announcements"])


@router.get("")
async def list_active_announcements(db: AsyncIOMotorDatabase = Depends(get_db)):
    """Active announcements, newest first (public)"""
    try:
        items = await db.announcements.find({"isActive": True}).sort("createdAt", -1).to_list(length=None)
        return serialize_many(items)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("", status_code=201)
async def create_announcement(
    data: AnnouncementCreate,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        record = AnnouncementRecord(
            title=data.title.strip(),
            content=data.content,
            priority=data.priority,
            createdBy=admin.username
        )
        document = record.dict()
        result = await db.announcements.insert_one(document)
        document["_id"] = result.inserted_id

        await log_audit(db, admin, "create_announcement", "announcement", str(result.inserted_id))
        return {"message": "Announcement created", "announcement": serialize_mongo(document)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{announcement_id}/toggle")
async def toggle_announcement(
    announcement_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    announcement_oid = to_object_id(announcement_id)
    current = await db.announcements.find_one({"_id": announcement_oid}) if announcement_oid else None
    if not current:
        raise HTTPException(status_code=404, detail="Announcement not found")

    updated = await db.announcements.find_one_and_update(
        {"_id": announcement_oid},
        {"$set": {"isActive": not current.get("isActive", True), "updatedAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER
    )
    return {"message": "Toggled", "announcement": serialize_mongo(updated)}


@router.delete("/{announcement_id}")
async def delete_announcement(
    announcement_id: str,
    admin: AdminContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    announcement_oid = to_object_id(announcement_id)
    result = await db.announcements.delete_one({"_id": announcement_oid}) if announcement_oid else None
    if not result or result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Announcement not found")

    await log_audit(db, admin, "delete_announcement", "announcement", announcement_id)
    return {"message": "Announcement deleted"}
