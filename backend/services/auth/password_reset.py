"""Forgot-password flow: OTP request, verification, password overwrite."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core import settings
from models import OtpPurpose

from ..email import EmailSender, send_otp_email
from .credentials import get_user_by_email, normalize_email, set_password
from .errors import PasswordMismatch, StepOutOfOrder
from .grants import grant_verified_email, require_grant, revoke_grant
from .otp import issue_otp, verify_otp
from .sessions import revoke_all_sessions

logger = logging.getLogger(__name__)


async def forgot_password(session: AsyncSession, sender: EmailSender, *, email: str) -> None:
    """Send a reset code when the account exists.

    Unknown or deactivated emails and delivery failures are only logged; the
    caller always answers the same way so responses do not reveal accounts.
    """
    normalized_email = normalize_email(email)
    user = await get_user_by_email(session, normalized_email)
    if user is None or not user.is_verified:
        logger.info("Password reset requested for unknown account")
        return

    await revoke_grant(session, normalized_email, OtpPurpose.PASSWORD_RESET)
    code = await issue_otp(session, normalized_email, OtpPurpose.PASSWORD_RESET)
    await session.commit()

    if not await send_otp_email(sender, normalized_email, OtpPurpose.PASSWORD_RESET, code):
        logger.warning("Password reset email not delivered", extra={"user_id": user.id})


async def verify_reset_otp(session: AsyncSession, *, email: str, otp: str) -> None:
    normalized_email = normalize_email(email)
    await verify_otp(session, normalized_email, OtpPurpose.PASSWORD_RESET, otp)
    await grant_verified_email(session, normalized_email, OtpPurpose.PASSWORD_RESET)
    await session.commit()


async def reset_password(
    session: AsyncSession,
    *,
    email: str,
    new_password: str,
    confirm_password: str,
) -> bool:
    """Overwrite the password; returns True when sessions were revoked."""
    if new_password != confirm_password:
        raise PasswordMismatch("reset password confirmation mismatch")

    normalized_email = normalize_email(email)
    await require_grant(session, normalized_email, OtpPurpose.PASSWORD_RESET)
    user = await get_user_by_email(session, normalized_email)
    if user is None or user.id is None or not user.is_verified:
        await revoke_grant(session, normalized_email, OtpPurpose.PASSWORD_RESET)
        await session.commit()
        raise StepOutOfOrder("reset grant for missing account", detail="Please verify your email first")

    set_password(user, new_password)
    session.add(user)
    await revoke_grant(session, normalized_email, OtpPurpose.PASSWORD_RESET)
    revoked = settings.password_reset_revokes_sessions
    if revoked:
        await revoke_all_sessions(session, user.id)
    await session.commit()
    logger.info("Password reset", extra={"user_id": user.id, "sessions_revoked": revoked})
    return revoked
