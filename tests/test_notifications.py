from fastapi.testclient import TestClient

from app.main import app
from app.notifications import email_service
from app.notifications.email_service import SMTPEmailService

client = TestClient(app)


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


def configured_service():
    service = SMTPEmailService()
    service.smtp_username = "portal@example.edu"
    service.smtp_password = "app-password"
    service.smtp_port = 465
    return service


class TestEmailService:
    def test_unconfigured_is_noop(self):
        result = SMTPEmailService().send_approval_email("a@b.c", "Asha", "Java", 50)
        assert result["success"] is False

    def test_approval_email(self, monkeypatch):
        FakeSMTP.sent = []
        monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", FakeSMTP)

        result = configured_service().send_approval_email("asha@example.edu", "Asha", "Java", 50, "Well done")
        assert result["success"] is True
        assert FakeSMTP.sent[0]["To"] == "asha@example.edu"
        assert "Java" in FakeSMTP.sent[0]["Subject"]

    def test_rejection_email(self, monkeypatch):
        FakeSMTP.sent = []
        monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", FakeSMTP)

        result = configured_service().send_rejection_email("asha@example.edu", "Asha", "Java", "Blurry scan")
        assert result["success"] is True
        assert len(FakeSMTP.sent) == 1

    def test_smtp_failure_is_reported(self, monkeypatch):
        def broken(*args, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", broken)
        result = configured_service().send_rejection_email("asha@example.edu", "Asha", "Java")
        assert result == {"success": False, "error": "connection refused"}

    def test_test_email_needs_configuration(self, db, admin_headers):
        resp = client.post("/api/admin/test-email", json={"testEmail": "a@b.c"}, headers=admin_headers)
        assert resp.status_code == 400
