"""
Tests for registration, achievement submission and the admin review flow.
"""

import asyncio

from bson import ObjectId
from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)

STUDENT = {
    "name": "Asha Rao",
    "email": "asha@example.edu",
    "rollNumber": "23CS001",
    "password": "secret123",
    "department": "CSE",
    "section": "A",
    "year": "II",
    "admissionYear": 2023,
}

COMPETITION = {
    "title": "Smart India Hackathon",
    "achievementType": "Competition",
    "category": "Technical",
    "dateOfIssue": "2025-01-15",
    "organizedInstitute": "Ministry of Education",
    "level": "National",
    "award": "1",
}


def register(overrides=None):
    resp = client.post("/api/auth/register", json={**STUDENT, **(overrides or {})})
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return data["user"]["id"], {"Authorization": f"Bearer {data['token']}"}


def submit(headers, form=None):
    return client.post(
        "/api/achievements/add",
        data=form or COMPETITION,
        files={"proofFiles": ("certificate.png", b"\x89PNG fake", "image/png")},
        headers=headers,
    )


def total_points(db, student_id):
    return asyncio.run(db.users.find_one({"_id": ObjectId(student_id)}))["totalPoints"]


class TestRegistration:
    def test_register_and_login(self, db):
        student_id, _ = register()
        resp = client.post("/api/auth/login", json={"email": "23CS001", "password": "secret123"})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == student_id

    def test_register_sets_academic_batch(self, db):
        resp = client.post("/api/auth/register", json=STUDENT)
        assert resp.json()["user"]["academicBatch"] == "2023-2027"

    def test_duplicate_email_rejected(self, db):
        register()
        resp = client.post("/api/auth/register", json={**STUDENT, "rollNumber": "23CS002"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Email already registered"

    def test_invalid_section(self, db):
        resp = client.post("/api/auth/register", json={**STUDENT, "section": "Z"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid section"

    def test_wrong_password(self, db):
        register()
        resp = client.post("/api/auth/login", json={"email": STUDENT["email"], "password": "nope"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid credentials - Wrong password"

    def test_me_requires_token(self, db):
        assert client.get("/api/auth/me").status_code == 401
        bad = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
        assert bad.status_code == 401
        assert bad.json()["detail"] == "Invalid or Expired Token"


class TestSubmission:
    def test_submit_stores_pending_achievement(self, db):
        student_id, headers = register()
        resp = submit(headers)
        assert resp.status_code == 201, resp.text

        achievement = resp.json()["achievement"]
        assert achievement["status"] == "pending"
        assert achievement["points"] == 0
        assert achievement["proofFiles"][0].startswith("/uploads/proof-")
        assert "warning" not in resp.json()

        user = asyncio.run(db.users.find_one({"_id": ObjectId(student_id)}))
        assert user["achievements"] == [ObjectId(achievement["_id"])]

    def test_competition_requires_award(self, db):
        _, headers = register()
        form = {k: v for k, v in COMPETITION.items() if k != "award"}
        resp = submit(headers, form)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Award is required for competition achievements"

    def test_non_technical_requires_sub_category(self, db):
        _, headers = register()
        resp = submit(headers, {**COMPETITION, "category": "Non-technical"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Sub-category is required for non-technical achievements"

    def test_duplicate_submission_is_screened(self, db):
        student_id, headers = register()
        submit(headers)
        resp = submit(headers)
        assert resp.status_code == 201

        stored = asyncio.run(db.achievements.find_one({"_id": ObjectId(resp.json()["achievement"]["_id"])}))
        types = [p["type"] for p in stored["suspiciousActivity"]["suspiciousPatterns"]]
        assert "DUPLICATE_SUBMISSION" in types
        assert stored["suspiciousActivity"]["requiresReview"] is True

    def test_list_my_achievements(self, db):
        _, headers = register()
        submit(headers)
        resp = client.get("/api/achievements/me", headers=headers)
        assert resp.status_code == 200
        assert [a["title"] for a in resp.json()] == ["Smart India Hackathon"]

    def test_other_student_cannot_read_or_delete(self, db):
        _, owner = register()
        _, intruder = register({"email": "ravi@example.edu", "rollNumber": "23CS002"})
        achievement_id = submit(owner).json()["achievement"]["_id"]

        assert client.get(f"/api/achievements/{achievement_id}", headers=intruder).status_code == 403
        assert client.delete(f"/api/achievements/{achievement_id}", headers=intruder).status_code == 403

    def test_owner_deletes_pending(self, db):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]

        resp = client.delete(f"/api/achievements/{achievement_id}", headers=headers)
        assert resp.status_code == 200
        user = asyncio.run(db.users.find_one({"_id": ObjectId(student_id)}))
        assert user["achievements"] == []


class TestReview:
    def test_approve_awards_calculated_points_once(self, db, admin_headers):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]

        resp = client.put(f"/api/achievements/admin/{achievement_id}/approve", json={}, headers=admin_headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["pointsAwarded"] == 200
        assert total_points(db, student_id) == 200

        again = client.put(f"/api/achievements/admin/{achievement_id}/approve", json={}, headers=admin_headers)
        assert again.status_code == 400
        assert again.json()["detail"] == "Already approved"
        assert total_points(db, student_id) == 200

    def test_custom_points_override(self, db, admin_headers):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]

        client.put(
            f"/api/achievements/admin/{achievement_id}/approve",
            json={"customPoints": 35, "adminNote": "Partial credit"},
            headers=admin_headers,
        )
        assert total_points(db, student_id) == 35

    def test_reject_pending_leaves_points_alone(self, db, admin_headers):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]

        resp = client.put(
            f"/api/achievements/admin/{achievement_id}/reject",
            json={"adminNote": "Certificate unreadable"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["achievement"]["status"] == "rejected"
        assert resp.json()["achievement"]["points"] == 0
        assert total_points(db, student_id) == 0

    def test_approved_cannot_be_rejected(self, db, admin_headers):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]
        client.put(f"/api/achievements/admin/{achievement_id}/approve", json={}, headers=admin_headers)

        resp = client.put(
            f"/api/achievements/admin/{achievement_id}/reject",
            json={"adminNote": "Certificate unreadable"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Achievement already reviewed"

        stored = asyncio.run(db.achievements.find_one({"_id": ObjectId(achievement_id)}))
        assert stored["status"] == "approved"
        assert stored["points"] == 200
        assert total_points(db, student_id) == 200

    def test_rejected_cannot_be_approved(self, db, admin_headers):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]
        client.put(f"/api/achievements/admin/{achievement_id}/reject", json={}, headers=admin_headers)

        resp = client.put(f"/api/achievements/admin/{achievement_id}/approve", json={}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Achievement already reviewed"

        review = client.put(
            f"/api/admin/achievements/{achievement_id}/review",
            json={"action": "approve"},
            headers=admin_headers,
        )
        assert review.status_code == 400

        stored = asyncio.run(db.achievements.find_one({"_id": ObjectId(achievement_id)}))
        assert stored["status"] == "rejected"
        assert stored["points"] == 0
        assert total_points(db, student_id) == 0

    def test_owner_cannot_delete_reviewed(self, db, admin_headers):
        _, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]
        client.put(f"/api/achievements/admin/{achievement_id}/reject", json={}, headers=admin_headers)

        resp = client.delete(f"/api/achievements/{achievement_id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Achievement already reviewed"

    def test_admin_review_endpoint(self, db, admin_headers):
        student_id, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]

        bad = client.put(
            f"/api/admin/achievements/{achievement_id}/review",
            json={"action": "maybe"},
            headers=admin_headers,
        )
        assert bad.status_code == 400
        assert bad.json()["detail"] == "Invalid action"

        resp = client.put(
            f"/api/admin/achievements/{achievement_id}/review",
            json={"action": "approve"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["totalPoints"] == 200

        logs = client.get("/api/admin/audit-logs", headers=admin_headers).json()["logs"]
        assert logs[0]["action"] == "approve_achievement"
        assert logs[0]["target_id"] == achievement_id

    def test_student_token_cannot_approve(self, db):
        _, headers = register()
        achievement_id = submit(headers).json()["achievement"]["_id"]
        resp = client.put(f"/api/achievements/admin/{achievement_id}/approve", json={}, headers=headers)
        assert resp.status_code == 401

    def test_unknown_achievement(self, db, admin_headers):
        resp = client.put(f"/api/achievements/admin/{ObjectId()}/approve", json={}, headers=admin_headers)
        assert resp.status_code == 404

    def test_manual_adjust_floors_at_zero(self, db, admin_headers):
        student_id, _ = register()
        resp = client.put(f"/api/admin/students/{student_id}/points", json={"delta": -50}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["totalPoints"] == 0

    def test_validate_certificate_requires_files(self, db, admin_headers):
        student_id, _ = register()
        result = asyncio.run(db.achievements.insert_one({
            "student": ObjectId(student_id), "title": "Java", "proofFiles": [], "status": "pending"
        }))
        resp = client.post(
            f"/api/admin/achievements/{result.inserted_id}/validate-certificate",
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No certificate files to validate"


class TestProfileAndRanking:
    def test_leaderboard_order_and_rank(self, db, admin_headers):
        first_id, _ = register()
        second_id, second = register({"email": "ravi@example.edu", "rollNumber": "23CS002", "name": "Ravi"})
        client.put(f"/api/admin/students/{second_id}/points", json={"delta": 40}, headers=admin_headers)

        board = client.get("/api/auth/leaderboard").json()
        assert [s["name"] for s in board] == ["Ravi", "Asha Rao"]
        assert [s["rank"] for s in board] == [1, 2]

        rank = client.get("/api/auth/my-rank", headers=second).json()
        assert rank["rank"] == 1
        assert rank["totalStudents"] == 2
        assert rank["percentile"] == 100

    def test_me_includes_rank(self, db):
        _, headers = register()
        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["rank"] == 1
        assert "passwordHash" not in resp.json()

    def test_profile_update(self, db):
        _, headers = register()
        resp = client.put(
            "/api/auth/profile",
            json={"name": "Asha R", "socialLinks": {"github": "https://github.com/asha"}},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["name"] == "Asha R"
        assert resp.json()["user"]["socialLinks"]["github"] == "https://github.com/asha"

        short = client.put("/api/auth/profile", json={"name": "A"}, headers=headers)
        assert short.status_code == 400

    def test_profile_picture_upload(self, db):
        _, headers = register()
        resp = client.post(
            "/api/auth/profile-pic",
            files={"file": ("me.jpg", b"jpeg", "image/jpeg")},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["url"].startswith("/uploads/profilePicUrl-")

        missing = client.post("/api/auth/profile-pic", headers=headers)
        assert missing.status_code == 400
