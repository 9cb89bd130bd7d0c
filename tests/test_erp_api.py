"""
Tests for the ERP profile lifecycle: draft, edit, submit, verify.
"""

import asyncio
import json

from bson import ObjectId
from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)

STUDENT = {
    "name": "Kiran Das",
    "email": "kiran@example.edu",
    "rollNumber": "22EC014",
    "password": "secret123",
    "department": "ECE",
    "section": "B",
    "year": "III",
    "admissionYear": 2022,
}

SEMESTERS = [
    {"semesterName": "1-1", "year": 1, "semesterNumber": 1, "sgpa": 8.5},
    {"semesterName": "1-2", "year": 1, "semesterNumber": 2, "sgpa": 9.0},
]


def register():
    data = client.post("/api/auth/register", json=STUDENT).json()
    return data["user"]["id"], {"Authorization": f"Bearer {data['token']}"}


def submitted_erp(headers):
    erp = client.get("/api/erp/my-erp", headers=headers).json()
    client.put("/api/erp/my-erp", json={"phoneNumber": "9876543210", "semesters": SEMESTERS}, headers=headers)
    client.post("/api/erp/my-erp/submit", headers=headers)
    return erp["_id"]


def total_points(db, student_id):
    return asyncio.run(db.users.find_one({"_id": ObjectId(student_id)}))["totalPoints"]


class TestStudentERP:
    def test_first_access_creates_draft(self, db):
        _, headers = register()
        resp = client.get("/api/erp/my-erp", headers=headers)
        assert resp.status_code == 200
        erp = resp.json()
        assert erp["status"] == "draft"
        assert erp["phoneNumber"] == "0000000000"
        assert erp["academicBatch"] == "2022-2026"

        again = client.get("/api/erp/my-erp", headers=headers).json()
        assert again["_id"] == erp["_id"]
        assert asyncio.run(db.erps.count_documents({})) == 1

    def test_update_recomputes_cgpa(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        resp = client.put("/api/erp/my-erp", json={"semesters": SEMESTERS}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["erp"]["overallCGPA"] == 8.75

    def test_update_ignores_protected_fields(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        resp = client.put(
            "/api/erp/my-erp",
            json={"status": "verified", "erpPoints": 500, "bloodGroup": "O+"},
            headers=headers,
        )
        erp = resp.json()["erp"]
        assert erp["status"] == "draft"
        assert erp["erpPoints"] == 0
        assert erp["bloodGroup"] == "O+"

    def test_invalid_semester_rejected(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        resp = client.put(
            "/api/erp/my-erp",
            json={"semesters": [{"semesterName": "1-1", "year": 1, "semesterNumber": 1, "sgpa": 12}]},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid semester details"

    def test_submit_requires_real_phone(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        client.put("/api/erp/my-erp", json={"semesters": SEMESTERS}, headers=headers)

        resp = client.post("/api/erp/my-erp/submit", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Please provide a valid phone number"

    def test_submit_requires_semesters(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        client.put("/api/erp/my-erp", json={"phoneNumber": "9876543210"}, headers=headers)

        resp = client.post("/api/erp/my-erp/submit", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Please add at least one semester's academic details"

    def test_submit_without_erp(self, db):
        _, headers = register()
        assert client.post("/api/erp/my-erp/submit", headers=headers).status_code == 404

    def test_personal_info_maps_scholarship_basis(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        resp = client.put(
            "/api/erp/personal-info",
            data={"personalData": json.dumps({"scholarshipBasis": "JEE Mains", "scholarshipType": "old"})},
            files={"tenthProof": ("tenth.pdf", b"%PDF-1.4", "application/pdf")},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        erp = resp.json()["erp"]
        assert erp["scholarshipBasis"] == "jee_mains"
        assert "scholarshipType" not in erp
        assert erp["tenthProofUrl"].startswith("/uploads/erp-")

    def test_personal_info_bad_json(self, db):
        _, headers = register()
        client.get("/api/erp/my-erp", headers=headers)
        resp = client.put("/api/erp/personal-info", data={"personalData": "{oops"}, headers=headers)
        assert resp.status_code == 400


class TestERPVerification:
    def test_verify_awards_points_once(self, db, admin_headers):
        student_id, headers = register()
        erp_id = submitted_erp(headers)

        resp = client.put(
            f"/api/erp/admin/{erp_id}/verify",
            json={"action": "verify", "points": 50, "adminNote": "Complete"},
            headers=admin_headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["studentPoints"] == 50

        again = client.put(
            f"/api/erp/admin/{erp_id}/verify",
            json={"action": "verify", "points": 50},
            headers=admin_headers,
        )
        assert again.json()["studentPoints"] == 50
        assert total_points(db, student_id) == 50

    def test_reverify_awards_difference(self, db, admin_headers):
        student_id, headers = register()
        erp_id = submitted_erp(headers)

        client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "verify", "points": 50}, headers=admin_headers)
        client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "verify", "points": 30}, headers=admin_headers)
        assert total_points(db, student_id) == 30

    def test_verified_erp_is_locked(self, db, admin_headers):
        _, headers = register()
        erp_id = submitted_erp(headers)
        client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "verify", "points": 10}, headers=admin_headers)

        resp = client.put("/api/erp/my-erp", json={"bloodGroup": "A+"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot update verified ERP. Contact admin."

    def test_reject_keeps_points(self, db, admin_headers):
        student_id, headers = register()
        erp_id = submitted_erp(headers)

        resp = client.put(
            f"/api/erp/admin/{erp_id}/verify",
            json={"action": "reject", "adminNote": "Missing marks memo"},
            headers=admin_headers,
        )
        assert resp.json()["message"] == "ERP rejected"
        assert resp.json()["erp"]["status"] == "rejected"
        assert total_points(db, student_id) == 0

    def test_reject_after_verify_keeps_awarded_points(self, db, admin_headers):
        student_id, headers = register()
        erp_id = submitted_erp(headers)
        client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "verify", "points": 40}, headers=admin_headers)

        client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "reject"}, headers=admin_headers)
        assert total_points(db, student_id) == 40

        resp = client.put(f"/api/erp/admin/{erp_id}/points", json={"points": 0}, headers=admin_headers)
        assert resp.json()["studentPoints"] == 0

    def test_unknown_action(self, db, admin_headers):
        _, headers = register()
        erp_id = submitted_erp(headers)
        resp = client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "archive"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid action. Use 'verify' or 'reject'"

    def test_points_update_applies_difference(self, db, admin_headers):
        student_id, headers = register()
        erp_id = submitted_erp(headers)
        client.put(f"/api/erp/admin/{erp_id}/verify", json={"action": "verify", "points": 40}, headers=admin_headers)

        resp = client.put(f"/api/erp/admin/{erp_id}/points", json={"points": 75}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["studentPoints"] == 75
        assert resp.json()["erp"]["erpPoints"] == 75

    def test_admin_status_endpoint(self, db, admin_headers):
        student_id, headers = register()
        erp_id = submitted_erp(headers)

        bad = client.put(f"/api/admin/erps/{erp_id}/verify", json={"status": "pending"}, headers=admin_headers)
        assert bad.status_code == 400

        resp = client.put(
            f"/api/admin/erps/{erp_id}/verify",
            json={"status": "verified", "points": 20},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "ERP verified successfully"
        assert resp.json()["erp"]["student"]["name"] == "Kiran Das"
        assert total_points(db, student_id) == 20

    def test_admin_list_filters_by_status(self, db, admin_headers):
        _, headers = register()
        submitted_erp(headers)

        resp = client.get("/api/erp/admin/all", params={"status": "submitted"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        assert resp.json()["erps"][0]["student"]["rollNumber"] == "22EC014"
        assert resp.json()["filterOptions"]["academicBatches"] == ["2022-2026"]

        empty = client.get("/api/erp/admin/all", params={"status": "verified"}, headers=admin_headers)
        assert empty.json()["total"] == 0

    def test_admin_student_lookup(self, db, admin_headers):
        student_id, headers = register()
        submitted_erp(headers)

        resp = client.get(f"/api/erp/admin/student/{student_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["student"]["email"] == "kiran@example.edu"

        missing = client.get(f"/api/erp/admin/student/{ObjectId()}", headers=admin_headers)
        assert missing.status_code == 404
        assert missing.json()["detail"] == "ERP not found for this student"
