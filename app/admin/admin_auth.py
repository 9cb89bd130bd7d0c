"""
Admin Authentication
Username/password login issuing admin JWT tokens signed with ADMIN_JWT_SECRET
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, Header, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core import config
from app.core.database import get_db, to_object_id
from app.core.security import (
    create_admin_token,
    decode_admin_token,
    extract_bearer,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


class AdminContext:
    """
    Validated admin identity for the current request
    """
    def __init__(self, admin_id: str, username: str):
        self.admin_id = admin_id
        self.username = username
        self.role = "admin"


async def get_current_admin(
    authorization: str = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> AdminContext:
    """
    FastAPI dependency to protect admin routes

    Raises:
        401: Missing, invalid or expired token, or admin no longer exists
        403: Token is not an admin token
    """
    token = extract_bearer(authorization)
    payload = decode_admin_token(token)

    admin_oid = to_object_id(payload.get("id"))
    if admin_oid is None:
        raise HTTPException(status_code=401, detail="Invalid token: missing admin id")

    admin = await db.admins.find_one({"_id": admin_oid}, {"passwordHash": 0})
    if not admin:
        raise HTTPException(status_code=401, detail="Admin not found")

    return AdminContext(str(admin["_id"]), admin.get("username"))


async def authenticate_admin(db: AsyncIOMotorDatabase, username: str, password: str) -> Optional[dict]:
    """
    Returns:
        dict: {"token", "admin"} on success, None on bad credentials
    """
    admin = await db.admins.find_one({"username": username})
    if not admin or not verify_password(password, admin.get("passwordHash")):
        return None

    admin_id = str(admin["_id"])
    return {
        "token": create_admin_token(admin_id, admin["username"]),
        "admin": {"id": admin_id, "username": admin["username"]}
    }


async def ensure_default_admin(db: AsyncIOMotorDatabase) -> bool:
    """
    Seed the admin account from ADMIN_USERNAME / ADMIN_PASSWORD if missing
    Called during application startup

    Returns:
        bool: True if a new admin was created
    """
    if not config.ADMIN_USERNAME or not config.ADMIN_PASSWORD:
        return False

    existing = await db.admins.find_one({"username": config.ADMIN_USERNAME})
    if existing:
        return False

    await db.admins.insert_one({
        "username": config.ADMIN_USERNAME,
        "passwordHash": hash_password(config.ADMIN_PASSWORD),
        "createdAt": datetime.utcnow()
    })
    logger.info("Seeded default admin account %s", config.ADMIN_USERNAME)
    return True
