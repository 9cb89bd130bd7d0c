import os
import tempfile

# Settings are read at import time, so they are set before any app import
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ["MONGO_DB_NAME"] = "student_erp_test"
os.environ["JWT_SECRET"] = "test-student-secret-with-at-least-32-chars"
os.environ["ADMIN_JWT_SECRET"] = "test-admin-secret-with-at-least-32-chars!"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin-password"
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="erp-uploads-")
for key in ("EMAIL_USER", "EMAIL_PASSWORD", "GEMINI_API_KEY"):
    os.environ.pop(key, None)

import asyncio

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.admin.dashboard_service import cache
from app.core.database import get_db
from app.core.security import create_admin_token, hash_password
from app.main import app


@pytest.fixture
def db():
    """Fresh in-memory database wired into every route"""
    database = AsyncMongoMockClient()["test_db"]
    app.dependency_overrides[get_db] = lambda: database
    asyncio.run(cache.clear())
    yield database
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(db):
    result = asyncio.run(db.admins.insert_one({
        "username": "admin",
        "passwordHash": hash_password("admin-password")
    }))
    token = create_admin_token(str(result.inserted_id), "admin")
    return {"Authorization": f"Bearer {token}"}
