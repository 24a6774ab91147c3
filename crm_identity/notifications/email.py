"""Outbound email delivery and the transactional templates used by the auth flows."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Protocol

from ..config import Settings

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    """Best-effort delivery; ``False`` signals failure, exceptions are not expected."""

    def send(self, to: str, subject: str, body: str) -> bool: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpEmailSender:
    """SMTP delivery with STARTTLS or implicit TLS.

    When no host is configured the message is logged instead of sent, which
    keeps local development working without a mail relay.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        from_email: str = "",
        from_name: str = "CRM",
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email or user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpEmailSender":
        """Build a sender from the SMTP_* settings."""
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def send(self, to: str, subject: str, body: str) -> bool:
        """Deliver an HTML message; returns ``False`` instead of raising on failure."""
        if not self.is_configured:
            logger.info("smtp not configured; email to %s (%s) logged only", redact_email(to), subject)
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(body, "html"))

        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.sendmail(self.from_email, [to], msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.host, self.port, context=context, timeout=self.timeout
                ) as server:
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "failed to send email to %s via %s:%s: %s",
                redact_email(to),
                self.host,
                self.port,
                exc,
            )
            return False
        except Exception:
            logger.exception("unexpected error sending email to %s", redact_email(to))
            return False

        logger.info("email sent to %s (%s)", redact_email(to), subject)
        return True


def confirmation_email(
    first_name: str, confirmation_link: str, expires_in_hours: int = 24
) -> tuple[str, str]:
    """Return the subject and HTML body asking the user to confirm their address."""
    name = escape(first_name)
    link = escape(confirmation_link, quote=True)
    subject = "Confirm your CRM account"
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>Hi {name},</h2>
    <p>Thank you for signing up! Please confirm your email address to get started.</p>
    <p style="text-align: center; margin: 30px 0;">
        <a href="{link}" style="background: #007bff; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px;">Confirm Email Address</a>
    </p>
    <p>If the button doesn't work, copy and paste this link into your browser:</p>
    <p style="word-break: break-all; color: #666;">{link}</p>
    <p>This link will expire in {expires_in_hours} hours.</p>
</div>
"""
    return subject, body


def welcome_email(first_name: str) -> tuple[str, str]:
    """Return the subject and HTML body sent once the address is confirmed."""
    name = escape(first_name)
    subject = f"Welcome to CRM, {first_name}!"
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>Welcome aboard, {name}!</h2>
    <p>Your email has been confirmed and your CRM account is ready to go.</p>
</div>
"""
    return subject, body
