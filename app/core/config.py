"""
Portal Configuration
Environment-backed settings for database, auth, email and AI services
"""

import os
import logging

logger = logging.getLogger(__name__)

# MongoDB
MONGO_URL = os.getenv("MONGO_URL") or os.getenv("MONGO_URI")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "student_erp_db")

# Student tokens
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))

# Admin tokens
ADMIN_JWT_SECRET = os.getenv("ADMIN_JWT_SECRET", "")
ADMIN_TOKEN_EXPIRE_HOURS = 24
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Email (SMTP)
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
IMAGE_DOWNLOAD_TIMEOUT_SECONDS = 10

# Uploads
UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(os.getcwd(), "uploads"))
MAX_PROOF_FILES = 5

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

REQUIRED_ENV_VARS = {
    "MONGO_URL": MONGO_URL,
    "JWT_SECRET": JWT_SECRET,
    "ADMIN_JWT_SECRET": ADMIN_JWT_SECRET,
    "ADMIN_USERNAME": ADMIN_USERNAME,
    "ADMIN_PASSWORD": ADMIN_PASSWORD,
}

RECOMMENDED_ENV_VARS = {
    "EMAIL_USER": EMAIL_USER,
    "EMAIL_PASSWORD": EMAIL_PASSWORD,
    "GEMINI_API_KEY": GEMINI_API_KEY,
    "FRONTEND_URL": os.getenv("FRONTEND_URL"),
}

MIN_SECRET_LENGTH = 32


def validate_env(required: dict = None, recommended: dict = None) -> list:
    """
    Check environment at startup

    Raises:
        RuntimeError: If any required variable is missing

    Returns:
        list: Warnings for missing recommended variables and weak secrets
    """
    required = REQUIRED_ENV_VARS if required is None else required
    recommended = RECOMMENDED_ENV_VARS if recommended is None else recommended

    missing = [key for key, value in required.items() if not value]
    if missing:
        raise RuntimeError(f"❌ FATAL: Missing required environment variables: {', '.join(missing)}")

    warnings = []
    for key, value in recommended.items():
        if not value:
            warnings.append(f"{key} is not set, related features are disabled")

    for key in ("JWT_SECRET", "ADMIN_JWT_SECRET"):
        value = required.get(key)
        if value and len(value) < MIN_SECRET_LENGTH:
            warnings.append(f"{key} is shorter than {MIN_SECRET_LENGTH} characters")

    for warning in warnings:
        logger.warning(warning)

    return warnings
