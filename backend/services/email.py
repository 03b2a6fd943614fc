"""Transactional email delivery."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from functools import lru_cache
from typing import Protocol, runtime_checkable

from core import settings
from models import OtpPurpose

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30

_OTP_SUBJECTS = {
    OtpPurpose.PASSWORD_RESET: "Password Reset OTP",
    OtpPurpose.REGISTRATION: "Complete Your Registration",
    OtpPurpose.EMAIL_CHANGE_CURRENT: "Confirm Your Email Change",
    OtpPurpose.EMAIL_CHANGE_NEW: "Verify Your New Email Address",
}
_OTP_INTROS = {
    OtpPurpose.PASSWORD_RESET: "Use this code to reset your password",
    OtpPurpose.REGISTRATION: "Use this code to verify your email and finish registering",
    OtpPurpose.EMAIL_CHANGE_CURRENT: "Use this code to confirm you requested an email change",
    OtpPurpose.EMAIL_CHANGE_NEW: "Use this code to verify your new email address",
}


@runtime_checkable
class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> bool: ...


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def render_otp_email(purpose: OtpPurpose, code: str, expires_in_minutes: int) -> tuple[str, str]:
    subject = f"{_OTP_SUBJECTS[purpose]} - {settings.smtp_from_name}"
    body = (
        f"{_OTP_INTROS[purpose]}: {code}\n\n"
        f"This code will expire in {expires_in_minutes} minutes. "
        "If you did not request it, you can ignore this email."
    )
    return subject, body


class LoggingEmailSender:
    """Development sender that only logs that a message would be sent."""

    async def send(self, to: str, subject: str, body: str) -> bool:
        logger.info(
            "Email delivery disabled, message not sent",
            extra={"to": redact_email(to), "subject": subject},
        )
        return True


class SmtpEmailSender:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        from_email: str,
        from_name: str,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_tls:
            with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.starttls(context=context)
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
        else:
            with smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=SMTP_TIMEOUT_SECONDS
            ) as server:
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> bool:
        message = self._build_message(to, subject, body)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "Failed to send email",
                extra={"to": redact_email(to), "subject": subject},
                exc_info=exc,
            )
            return False
        logger.info("Email sent", extra={"to": redact_email(to), "subject": subject})
        return True


@lru_cache
def get_email_sender() -> EmailSender:
    """Return the process-wide sender; SMTP when configured."""
    from_email = settings.smtp_from_email or settings.smtp_user
    if not settings.smtp_host or not from_email:
        return LoggingEmailSender()
    return SmtpEmailSender(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=from_email,
        from_name=settings.smtp_from_name,
    )


async def send_otp_email(sender: EmailSender, to: str, purpose: OtpPurpose, code: str) -> bool:
    subject, body = render_otp_email(purpose, code, settings.otp_expire_minutes)
    return await sender.send(to, subject, body)
