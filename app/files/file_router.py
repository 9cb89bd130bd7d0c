import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import FileResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.admin.admin_auth import AdminContext, get_current_admin
from app.core.database import get_db, serialize_many, to_object_id
from app.core.security import decode_any_token
from app.files.file_utils import (
    content_type_for,
    get_uploads_path,
    is_safe_filename,
    list_uploaded_files,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["Files"])


async def get_file_viewer(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> dict:
    """
    Dependency: admin or student, token from the Authorization header or ?token=

    Raises:
        401: No token, bad token, or unknown account
    """
    raw_token = None
    if authorization and authorization.startswith("Bearer "):
        raw_token = authorization.split(" ")[1]
    elif token:
        raw_token = token

    if not raw_token:
        raise HTTPException(status_code=401, detail="Authentication required")

    payload = decode_any_token(raw_token)
    account_oid = to_object_id(payload.get("id"))
    collection = db.admins if payload["role"] == "admin" else db.users

    account = await collection.find_one({"_id": account_oid}, {"_id": 1}) if account_oid else None
    if not account:
        raise HTTPException(status_code=401, detail="User not found")

    return {"id": str(account["_id"]), "role": payload["role"]}


@router.get("/debug/list")
async def list_files(admin: AdminContext = Depends(get_current_admin)):
    uploads_path = get_uploads_path()
    if not os.path.isdir(uploads_path):
        return {"message": "Uploads directory does not exist", "path": uploads_path, "files": []}

    files = serialize_many(list_uploaded_files())
    return {"path": uploads_path, "totalFiles": len(files), "files": files}


@router.get("/{filename}")
async def serve_file(filename: str, viewer: dict = Depends(get_file_viewer)):
    if not is_safe_filename(filename):
        raise HTTPException(status_code=400, detail="Invalid filename")

    file_path = os.path.join(get_uploads_path(), filename)
    if not os.path.isfile(file_path):
        logger.info("File not found: %s", file_path)
        raise HTTPException(status_code=404, detail="File not found")

    content_type = content_type_for(filename)
    headers = {"Cache-Control": "public, max-age=31536000"}
    if content_type == "application/pdf":
        headers["Content-Disposition"] = f'inline; filename="{filename}"'

    return FileResponse(file_path, media_type=content_type, headers=headers)
