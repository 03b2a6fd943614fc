"""Three-step registration: email OTP, verification, account details.

Progress is tracked server-side: ``VerifiedEmailGrant(purpose=registration)``
exists only between a successful OTP verification and account creation, and
requesting a new code drops it again.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.errors import violated_column
from models import OtpPurpose, User

from ..email import EmailSender, send_otp_email
from .credentials import get_user_by_email, get_user_by_username, normalize_email, set_password
from .errors import EmailAlreadyInUse, EmailDeliveryFailed, PasswordMismatch, UsernameTaken
from .grants import grant_verified_email, require_grant, revoke_grant
from .otp import issue_otp, verify_otp

logger = logging.getLogger(__name__)


async def send_registration_otp(
    session: AsyncSession, sender: EmailSender, *, email: str
) -> None:
    normalized_email = normalize_email(email)
    existing = await get_user_by_email(session, normalized_email)
    if existing is not None and existing.is_verified:
        raise EmailAlreadyInUse("registration for verified email", detail="User already exists and is verified")

    await revoke_grant(session, normalized_email, OtpPurpose.REGISTRATION)
    code = await issue_otp(session, normalized_email, OtpPurpose.REGISTRATION)
    await session.commit()

    if not await send_otp_email(sender, normalized_email, OtpPurpose.REGISTRATION, code):
        raise EmailDeliveryFailed("registration OTP email was not delivered")


async def verify_registration_otp(session: AsyncSession, *, email: str, otp: str) -> None:
    normalized_email = normalize_email(email)
    await verify_otp(session, normalized_email, OtpPurpose.REGISTRATION, otp)
    await grant_verified_email(session, normalized_email, OtpPurpose.REGISTRATION)
    await session.commit()


async def register_details(
    session: AsyncSession,
    *,
    email: str,
    username: str,
    password: str,
    confirm_password: str,
) -> User:
    if password != confirm_password:
        raise PasswordMismatch("registration password confirmation mismatch")

    normalized_email = normalize_email(email)
    await require_grant(session, normalized_email, OtpPurpose.REGISTRATION)

    user = await get_user_by_email(session, normalized_email)
    if user is not None and user.is_verified:
        raise EmailAlreadyInUse("email registered while flow was in progress")

    username_owner = await get_user_by_username(session, username)
    if username_owner is not None and (user is None or username_owner.id != user.id):
        raise UsernameTaken(f"username {username!r} already taken")

    if user is None:
        user = User(email=normalized_email, username=username)
    else:
        # An unverified row for this email is completed in place.
        user.username = username
    set_password(user, password)
    user.is_verified = True
    session.add(user)
    await revoke_grant(session, normalized_email, OtpPurpose.REGISTRATION)

    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        column = violated_column(exc, ("email", "username"))
        if column == "email":
            raise EmailAlreadyInUse("email unique violation") from exc
        if column == "username":
            raise UsernameTaken("username unique violation") from exc
        raise

    logger.info("Registration completed", extra={"user_id": user.id})
    return user
