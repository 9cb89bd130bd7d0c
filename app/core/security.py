from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from jose import jwt, JWTError
from passlib.context import CryptContext

from app.core import config

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ==================== TOKENS ====================

def create_student_token(student_id: str) -> str:
    expire = datetime.utcnow() + timedelta(days=config.JWT_EXPIRES_DAYS)
    payload = {"id": student_id, "role": "student", "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def create_admin_token(admin_id: str, username: str) -> str:
    expire = datetime.utcnow() + timedelta(hours=config.ADMIN_TOKEN_EXPIRE_HOURS)
    payload = {"id": admin_id, "username": username, "role": "admin", "exp": expire}
    return jwt.encode(payload, config.ADMIN_JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")


def decode_student_token(token: str) -> dict:
    return decode_token(token, config.JWT_SECRET)


def decode_admin_token(token: str) -> dict:
    payload = decode_token(token, config.ADMIN_JWT_SECRET)
    if payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Access denied")
    return payload


def decode_any_token(token: str) -> dict:
    """
    Try the admin secret first, then the student secret

    Returns:
        dict: payload with "role" set to "admin" or "student"
    """
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = jwt.decode(token, config.ADMIN_JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        payload["role"] = "admin"
        return payload
    except JWTError:
        pass

    payload = decode_student_token(token)
    payload["role"] = "student"
    return payload


def extract_bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return authorization.split(" ")[1]
