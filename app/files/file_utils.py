import logging
import os
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import UploadFile

from app.core import config

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def get_uploads_path() -> str:
    return config.UPLOADS_DIR


def base_filename(file_ref: str) -> str:
    """'/uploads/abc.png' -> 'abc.png'"""
    return os.path.basename(file_ref.replace(UPLOADS_PREFIX, "", 1))


def is_safe_filename(filename: str) -> bool:
    if not filename or filename in (".", ".."):
        return False
    return ".." not in filename and "/" not in filename and "\\" not in filename


def resolve_upload(file_ref: str) -> str:
    return os.path.join(get_uploads_path(), base_filename(file_ref))


def file_exists(file_ref: Optional[str]) -> bool:
    if not file_ref:
        return False
    return os.path.isfile(resolve_upload(file_ref))


def content_type_for(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return CONTENT_TYPES.get(ext, "application/octet-stream")


def get_file_info(file_ref: str) -> Optional[dict]:
    if not file_exists(file_ref):
        return None

    path = resolve_upload(file_ref)
    stats = os.stat(path)
    return {
        "filename": base_filename(file_ref),
        "path": path,
        "size": stats.st_size,
        "modified": datetime.utcfromtimestamp(stats.st_mtime),
        "exists": True,
    }


def validate_proof_files(proof_files) -> dict:
    if not isinstance(proof_files, list):
        return {"valid": False, "existingFiles": [], "missingFiles": [], "totalFiles": 0}

    existing = [f for f in proof_files if file_exists(f)]
    missing = [f for f in proof_files if not file_exists(f)]

    return {
        "valid": len(missing) == 0,
        "existingFiles": existing,
        "missingFiles": missing,
        "totalFiles": len(proof_files),
    }


def cleanup_file_references(proof_files) -> List[str]:
    if not isinstance(proof_files, list):
        return []
    return [f for f in proof_files if file_exists(f)]


def list_uploaded_files() -> List[dict]:
    uploads_path = get_uploads_path()
    if not os.path.isdir(uploads_path):
        return []

    files = []
    for filename in sorted(os.listdir(uploads_path)):
        path = os.path.join(uploads_path, filename)
        if not os.path.isfile(path):
            continue
        stats = os.stat(path)
        files.append({
            "filename": filename,
            "size": stats.st_size,
            "modified": datetime.utcfromtimestamp(stats.st_mtime),
            "url": f"{UPLOADS_PREFIX}{filename}",
        })
    return files


async def save_upload(upload: UploadFile, prefix: str = "file") -> str:
    """
    Persist an uploaded file under a generated name

    Returns:
        str: '/uploads/<generated name>'
    """
    os.makedirs(get_uploads_path(), exist_ok=True)

    ext = os.path.splitext(upload.filename or "")[1].lower()
    filename = f"{prefix}-{int(datetime.utcnow().timestamp() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"

    content = await upload.read()
    with open(os.path.join(get_uploads_path(), filename), "wb") as handle:
        handle.write(content)

    logger.info("Saved upload %s (%s bytes)", filename, len(content))
    return f"{UPLOADS_PREFIX}{filename}"
