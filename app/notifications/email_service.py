import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from html import escape
from typing import Optional

from app.core import config

logger = logging.getLogger(__name__)

PORTAL_NAME = "Student Achievement Portal"


class SMTPEmailService:
    """
    Achievement / ERP notifications over SMTP
    Every send returns {"success": bool, ...} and never raises
    """

    def __init__(self):
        self.smtp_server = config.SMTP_HOST
        self.smtp_port = config.SMTP_PORT
        self.smtp_username = config.EMAIL_USER
        self.smtp_password = config.EMAIL_PASSWORD

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_username and self.smtp_password)

    def _send(self, to_email: str, subject: str, html_content: str, text_content: str) -> dict:
        if not self.is_configured:
            logger.warning("Email not sent to %s: EMAIL_USER / EMAIL_PASSWORD not configured", to_email)
            return {"success": False, "message": "Email credentials not configured"}

        if not to_email:
            return {"success": False, "message": "No recipient address"}

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{PORTAL_NAME} <{self.smtp_username}>"
            msg["To"] = to_email
            msg["Message-ID"] = make_msgid()

            msg.attach(MIMEText(text_content, "plain", "utf-8"))
            msg.attach(MIMEText(html_content, "html", "utf-8"))

            if self.smtp_port == 465:
                with smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, timeout=20) as server:
                    server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=20) as server:
                    server.starttls()
                    server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)

            logger.info("Email '%s' sent to %s", subject, to_email)
            return {"success": True, "messageId": msg["Message-ID"]}

        except Exception as e:
            logger.error("Failed to send email '%s' to %s: %s", subject, to_email, e)
            return {"success": False, "error": str(e)}

    # ==================== TEMPLATES ====================

    def _wrap_html(self, heading: str, color: str, body: str) -> str:
        return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: {color}; color: #fff; padding: 20px; border-radius: 8px 8px 0 0;">
                <h2 style="margin: 0;">{heading}</h2>
            </div>
            <div style="padding: 20px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 8px 8px;">
                {body}
                <p style="margin-top: 24px;">
                    <a href="{config.FRONTEND_URL}" style="color: {color};">Open the portal</a>
                </p>
            </div>
        </div>
        """

    def send_approval_email(
        self,
        email: str,
        student_name: str,
        item_title: str,
        points: int = 0,
        admin_note: Optional[str] = None
    ) -> dict:
        note_html = f"<p><strong>Admin note:</strong> {escape(admin_note)}</p>" if admin_note else ""
        body = f"""
            <p>Hi {escape(student_name or "Student")},</p>
            <p>Your submission <strong>{escape(item_title)}</strong> has been approved.</p>
            <p>Points awarded: <strong>{points}</strong></p>
            {note_html}
        """
        text = (
            f"Hi {student_name or 'Student'},\n\n"
            f"Your submission \"{item_title}\" has been approved.\n"
            f"Points awarded: {points}\n"
            + (f"Admin note: {admin_note}\n" if admin_note else "")
        )
        return self._send(
            email,
            f"Approved: {item_title}",
            self._wrap_html("Submission approved 🎉", "#16a34a", body),
            text
        )

    def send_rejection_email(
        self,
        email: str,
        student_name: str,
        item_title: str,
        admin_note: Optional[str] = None
    ) -> dict:
        note_html = f"<p><strong>Reason:</strong> {escape(admin_note)}</p>" if admin_note else ""
        body = f"""
            <p>Hi {escape(student_name or "Student")},</p>
            <p>Your submission <strong>{escape(item_title)}</strong> was not approved.</p>
            {note_html}
            <p>You can correct the details and submit again.</p>
        """
        text = (
            f"Hi {student_name or 'Student'},\n\n"
            f"Your submission \"{item_title}\" was not approved.\n"
            + (f"Reason: {admin_note}\n" if admin_note else "")
        )
        return self._send(
            email,
            f"Not approved: {item_title}",
            self._wrap_html("Submission not approved", "#dc2626", body),
            text
        )


def get_email_service() -> SMTPEmailService:
    return SMTPEmailService()
