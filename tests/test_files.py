import asyncio
import os

from fastapi.testclient import TestClient

from app.core import config
from app.core.security import create_student_token
from app.files.file_utils import (
    base_filename,
    cleanup_file_references,
    content_type_for,
    is_safe_filename,
    validate_proof_files,
)
from app.main import app

client = TestClient(app)


def write_upload(name, content=b"data"):
    with open(os.path.join(config.UPLOADS_DIR, name), "wb") as handle:
        handle.write(content)
    return f"/uploads/{name}"


class TestFileUtils:
    def test_safe_filenames(self):
        assert is_safe_filename("proof-1.png")
        assert not is_safe_filename("..")
        assert not is_safe_filename("evil..png")
        assert not is_safe_filename("a/b.png")
        assert not is_safe_filename("a\\b.png")
        assert not is_safe_filename("")

    def test_base_filename(self):
        assert base_filename("/uploads/proof-1.png") == "proof-1.png"
        assert base_filename("proof-1.png") == "proof-1.png"

    def test_content_types(self):
        assert content_type_for("x.PDF") == "application/pdf"
        assert content_type_for("x.jpeg") == "image/jpeg"
        assert content_type_for("x.bin") == "application/octet-stream"

    def test_proof_file_status(self):
        present = write_upload("present-file.png")
        status = validate_proof_files([present, "/uploads/gone.png"])
        assert status["valid"] is False
        assert status["existingFiles"] == [present]
        assert status["missingFiles"] == ["/uploads/gone.png"]
        assert cleanup_file_references([present, "/uploads/gone.png"]) == [present]
        assert validate_proof_files(None)["totalFiles"] == 0


class TestFileServing:
    def test_requires_token(self, db):
        write_upload("served.pdf", b"%PDF-1.4")
        resp = client.get("/uploads/served.pdf")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Authentication required"

    def test_admin_header(self, db, admin_headers):
        write_upload("served.pdf", b"%PDF-1.4")
        resp = client.get("/uploads/served.pdf", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"].startswith("inline")
        assert resp.content == b"%PDF-1.4"

    def test_student_query_token(self, db):
        result = asyncio.run(db.users.insert_one({"name": "Asha", "email": "asha@example.edu"}))
        write_upload("photo.png", b"png")

        resp = client.get("/uploads/photo.png", params={"token": create_student_token(str(result.inserted_id))})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"

    def test_unknown_account(self, db):
        write_upload("photo.png", b"png")
        token = create_student_token("64b000000000000000000000")
        resp = client.get("/uploads/photo.png", params={"token": token})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "User not found"

    def test_rejects_traversal(self, db, admin_headers):
        resp = client.get("/uploads/evil..png", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid filename"

    def test_missing_file(self, db, admin_headers):
        resp = client.get("/uploads/nothing-here.png", headers=admin_headers)
        assert resp.status_code == 404

    def test_debug_list_is_admin_only(self, db, admin_headers):
        write_upload("listed.png")
        assert client.get("/uploads/debug/list").status_code == 401

        resp = client.get("/uploads/debug/list", headers=admin_headers)
        assert resp.status_code == 200
        assert "listed.png" in [f["filename"] for f in resp.json()["files"]]
