from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from app.admin.admin_auth import AdminContext


class AuditLog(BaseModel):
    actor_id: str
    actor_username: str
    role: str  # admin
    action: str  # approve_achievement, verify_erp, adjust_points, etc.
    target_type: str  # achievement, student, erp, export
    target_id: str
    metadata: dict = {}
    timestamp: datetime = Field(default_factory=datetime.utcnow)


async def log_audit(
    db: AsyncIOMotorDatabase,
    admin: AdminContext,
    action: str,
    target_type: str,
    target_id: str,
    metadata: dict = None
):
    """
    Log all destructive or point-changing admin actions for auditability

    Args:
        admin: AdminContext of the acting admin
        action: Action performed (e.g., 'approve_achievement', 'adjust_points')
        target_type: Resource type (e.g., 'achievement', 'student', 'erp')
        target_id: ID of the resource
        metadata: Additional context (optional)
    """
    audit_log = AuditLog(
        actor_id=admin.admin_id,
        actor_username=admin.username,
        role="admin",
        action=action,
        target_type=target_type,
        target_id=target_id,
        metadata=metadata or {},
        timestamp=datetime.utcnow()
    )

    await db.audit_logs.insert_one(audit_log.dict())


async def get_audit_trail(
    db: AsyncIOMotorDatabase,
    target_type: str = None,
    target_id: str = None,
    limit: int = 100
):
    """
    Retrieve audit logs with optional filters, newest first
    """
    query = {}

    if target_type:
        query["target_type"] = target_type

    if target_id:
        query["target_id"] = target_id

    cursor = db.audit_logs.find(query).sort("timestamp", -1).limit(limit)
    logs = await cursor.to_list(length=limit)

    for log in logs:
        log.pop("_id", None)

    return logs
