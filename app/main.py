import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.achievements.achievement_router import router as achievement_router
from app.admin.admin_auth import ensure_default_admin
from app.admin.router import router as admin_router
from app.announcements.announcement_router import router as announcement_router
from app.core import config
from app.core.database import create_indexes, db
from app.erp.erp_router import router as erp_router
from app.files.file_router import router as file_router
from app.students.student_router import router as student_router
from app.system.health_router import router as health_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student ERP Portal API")


@app.on_event("startup")
async def startup_event():
    config.validate_env()
    os.makedirs(config.UPLOADS_DIR, exist_ok=True)
    await create_indexes()
    await ensure_default_admin(db)
    logger.info("Student ERP Portal API started (%s)", config.ENVIRONMENT)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL, "http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"]
)


# ==================== ROUTER REGISTRATION ====================
app.include_router(student_router)
app.include_router(achievement_router)
app.include_router(admin_router)
app.include_router(erp_router)
app.include_router(announcement_router)
app.include_router(file_router)
app.include_router(health_router)
# ============================================================
