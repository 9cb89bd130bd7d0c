import time
from datetime import datetime

from fastapi import APIRouter

from app.core import config

router = APIRouter(tags=["System"])

API_VERSION = "1.0.0"
STARTED_AT = time.monotonic()


@router.get("/api/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 2),
        "environment": config.ENVIRONMENT
    }


@router.get("/")
async def root():
    return {"ok": True, "message": "Student ERP Portal API", "version": API_VERSION}
