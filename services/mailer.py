"""
Transactional email over SMTP.

Senders never raise: every call returns an EmailResult. When SMTP is not
configured the result depends on the environment: dev/test report
skipped=True (the flow carries on as if sent), production reports a
failure.
"""
from __future__ import annotations

import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from urllib.parse import quote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailResult:
    success: bool
    skipped: bool = False
    error: str | None = None
    message_id: str | None = None


def _redact(address: str) -> str:
    if "@" not in address:
        return "redacted"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    def __init__(
        self,
        *,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool = True,
        from_email: str = "noreply@votive.app",
        app_url: str = "http://localhost:3000",
        app_env: str = "dev",
        password_reset_ttl_label: str = "1 hour",
        email_verify_ttl_label: str = "24 hours",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email
        self.app_url = app_url.rstrip("/")
        self.app_env = app_env
        self.password_reset_ttl_label = password_reset_ttl_label
        self.email_verify_ttl_label = email_verify_ttl_label

    @classmethod
    def from_config(cls, config) -> "EmailService":
        return cls(
            smtp_host=config.get("SMTP_HOST"),
            smtp_port=int(config.get("SMTP_PORT", 587)),
            smtp_user=config.get("SMTP_USER"),
            smtp_password=config.get("SMTP_PASSWORD"),
            smtp_use_tls=bool(config.get("SMTP_USE_TLS", True)),
            from_email=config.get("SMTP_FROM", "noreply@votive.app"),
            app_url=config.get("APP_URL", "http://localhost:3000"),
            app_env=config.get("APP_ENV", "dev"),
            password_reset_ttl_label=_ttl_label(config.get("PASSWORD_RESET_TTL")),
            email_verify_ttl_label=_ttl_label(config.get("EMAIL_VERIFY_TTL")),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    def send_password_reset_email(self, to: str, token: str, name: str | None = None) -> EmailResult:
        url = f"{self.app_url}/reset-password?token={quote(token)}"
        greeting = f"Hi {name}" if name else "Hi"
        text = (
            f"{greeting},\n\n"
            "You requested to reset your password for your Votive account.\n\n"
            f"Open the link below to choose a new password:\n{url}\n\n"
            f"This link will expire in {self.password_reset_ttl_label}.\n\n"
            "If you didn't request this, you can ignore this email. "
            "Your password will remain unchanged.\n\n- The Votive Team"
        )
        body = _html_page(
            "Reset Your Password",
            greeting,
            "You requested to reset your password for your Votive account.",
            url,
            "Reset Password",
            f"This link will expire in {self.password_reset_ttl_label}.",
        )
        return self._send(to, "Reset Your Votive Password", text, body)

    def send_email_verification_email(self, to: str, token: str, name: str | None = None) -> EmailResult:
        url = f"{self.app_url}/verify-email?token={quote(token)}"
        greeting = f"Hi {name}" if name else "Hi"
        text = (
            f"{greeting},\n\n"
            "Welcome to Votive! Please verify your email address.\n\n"
            f"Open the link below to verify your email:\n{url}\n\n"
            f"This link will expire in {self.email_verify_ttl_label}.\n\n"
            "If you didn't create a Votive account, you can ignore this email.\n\n- The Votive Team"
        )
        body = _html_page(
            "Verify Your Email",
            greeting,
            "Welcome to Votive! Please verify your email address.",
            url,
            "Verify Email",
            f"This link will expire in {self.email_verify_ttl_label}.",
        )
        return self._send(to, "Verify Your Votive Email Address", text, body)

    def _send(self, to: str, subject: str, text: str, html_body: str) -> EmailResult:
        if not self.is_configured:
            if self.app_env in ("dev", "development", "test", "testing"):
                logger.warning("SMTP not configured; skipped email %r to %s", subject, _redact(to))
                return EmailResult(success=False, skipped=True,
                                   error="Email not sent - SMTP not configured in development/test")
            return EmailResult(success=False, error="Email service is not configured")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Message-ID"] = make_msgid()
        msg.set_content(text)
        msg.add_alternative(html_body, subtype="html")

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email %r to %s: %s", subject, _redact(to), exc)
            return EmailResult(success=False, error=str(exc))

        logger.info("Sent email %r to %s", subject, _redact(to))
        return EmailResult(success=True, message_id=msg["Message-ID"])


def _ttl_label(ttl) -> str:
    if ttl is None:
        return "a limited time"
    seconds = int(ttl.total_seconds())
    if seconds % 3600 == 0:
        hours = seconds // 3600
        return "1 hour" if hours == 1 else f"{hours} hours"
    minutes = max(1, seconds // 60)
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


def _html_page(title: str, greeting: str, lead: str, url: str, button: str, footer: str) -> str:
    url = html.escape(url, quote=True)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #4a5568;">{html.escape(title)}</h1>
  <p>{html.escape(greeting)},</p>
  <p>{html.escape(lead)}</p>
  <p style="text-align: center; margin: 30px 0;">
    <a href="{url}" style="background-color: #4a90a4; color: white; text-decoration: none; padding: 14px 28px; border-radius: 6px;">{html.escape(button)}</a>
  </p>
  <p style="font-size: 14px; color: #718096;">{html.escape(footer)}</p>
  <p style="font-size: 13px; color: #a0aec0;">- The Votive Team</p>
</body>
</html>"""
