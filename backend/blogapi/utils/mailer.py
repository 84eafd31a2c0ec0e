from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from blogapi.core.config import Settings


logger = logging.getLogger("blog.mail")


def _redact(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailManager:
    """
    Composes and dispatches auth emails over SMTP.

    Delivery is best effort: failures are logged and reported as False, never
    raised, so code issuance is not rolled back by a mail outage. Without SMTP
    configuration the message is only logged (dev mode).
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        frontend_url: Optional[str] = None,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.frontend_url = (frontend_url or "https://somesite.com").rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailManager":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port or 587,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_pass,
            from_email=settings.email_from,
            frontend_url=settings.frontend_url,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_email(self, to_email: str, subject: str, text: str, html: str) -> bool:
        if not self.is_configured:
            logger.info("email_dev_mode to=%s subject=%s", _redact(to_email), subject)
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls(context=ssl.create_default_context())
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError):
            logger.exception("email_send_failed to=%s subject=%s", _redact(to_email), subject)
            return False

        logger.info("email_sent to=%s subject=%s", _redact(to_email), subject)
        return True

    def send_registration_message(self, email: str, confirmation_code: str) -> bool:
        link = f"{self.frontend_url}/confirm-email?code={confirmation_code}"
        subject = "Finish registration"
        text = f"Thank you for your registration. To finish registration open: {link}"
        html = (
            "<h1>Thank you for your registration</h1>"
            f"<p>To finish registration please follow the link below:"
            f" <a href=\"{link}\">complete registration</a></p>"
        )
        return self.send_email(email, subject, text, html)

    def send_password_recovery_message(self, email: str, recovery_code: str) -> bool:
        link = f"{self.frontend_url}/password-recovery?recoveryCode={recovery_code}"
        subject = "Password recovery"
        text = f"To finish password recovery open: {link}"
        html = (
            "<h1>Password recovery</h1>"
            f"<p>To finish password recovery please follow the link below:"
            f" <a href=\"{link}\">recovery password</a></p>"
        )
        return self.send_email(email, subject, text, html)
