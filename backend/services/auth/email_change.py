"""Email change for an authenticated user.

Both the current and the new address must prove ownership with a one-time
code before ``confirm`` swaps the email. Progress lives in one
``EmailChangeSession`` row per user and every step checks it, so steps cannot
be skipped or replayed out of order.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, cast

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import settings
from db.errors import is_unique_violation
from models import EmailChangeSession, OtpPurpose, User

from ..email import EmailSender, send_otp_email
from .credentials import email_in_use, normalize_email, set_password
from .errors import EmailAlreadyInUse, EmailDeliveryFailed, StepOutOfOrder
from .otp import issue_otp, verify_otp
from .sessions import revoke_all_sessions
from .token_store import ensure_aware, utcnow

logger = logging.getLogger(__name__)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _user_id(user: User) -> int:
    if user.id is None:
        raise StepOutOfOrder("user record is missing an identifier")
    return user.id


async def _delete_change_session(session: AsyncSession, user_id: int) -> None:
    await session.execute(
        delete(EmailChangeSession)
        .where(_eq(EmailChangeSession.user_id, user_id))
        .execution_options(synchronize_session=False)
    )


async def _active_change_session(session: AsyncSession, user_id: int) -> EmailChangeSession:
    change = await session.get(EmailChangeSession, user_id)
    if change is None:
        raise StepOutOfOrder(
            f"no email change in progress for user {user_id}",
            detail="Please verify your current email first",
        )
    if ensure_aware(change.expires_at) <= utcnow():
        raise StepOutOfOrder(
            f"email change session expired for user {user_id}",
            detail="Email change session expired, please start again",
        )
    return change


async def start_email_change(session: AsyncSession, sender: EmailSender, user: User) -> None:
    """Reset progress and send a code to the account's current address."""
    user_id = _user_id(user)
    await _delete_change_session(session, user_id)
    session.add(
        EmailChangeSession(
            user_id=user_id,
            current_email_verified=False,
            new_email_verified=False,
            pending_new_email=None,
            expires_at=utcnow() + timedelta(minutes=settings.email_change_session_ttl_minutes),
        )
    )
    code = await issue_otp(session, user.email, OtpPurpose.EMAIL_CHANGE_CURRENT)
    await session.commit()

    if not await send_otp_email(sender, user.email, OtpPurpose.EMAIL_CHANGE_CURRENT, code):
        raise EmailDeliveryFailed(f"email change code for user {user_id} not delivered")


async def verify_current_email(session: AsyncSession, user: User, *, otp: str) -> None:
    user_id = _user_id(user)
    await _active_change_session(session, user_id)
    await verify_otp(session, user.email, OtpPurpose.EMAIL_CHANGE_CURRENT, otp)
    change = await _active_change_session(session, user_id)
    change.current_email_verified = True
    session.add(change)
    await session.commit()
    logger.info("Current email verified for change", extra={"user_id": user_id})


async def request_new_email(
    session: AsyncSession, sender: EmailSender, user: User, *, new_email: str
) -> None:
    user_id = _user_id(user)
    change = await _active_change_session(session, user_id)
    if not change.current_email_verified:
        raise StepOutOfOrder(
            f"new email requested before current verified for user {user_id}",
            detail="Please verify your current email first",
        )

    normalized_email = normalize_email(new_email)
    if await email_in_use(session, normalized_email):
        raise EmailAlreadyInUse(f"requested email already registered for user {user_id}")

    change.pending_new_email = normalized_email
    change.new_email_verified = False
    session.add(change)
    code = await issue_otp(session, normalized_email, OtpPurpose.EMAIL_CHANGE_NEW)
    await session.commit()

    if not await send_otp_email(sender, normalized_email, OtpPurpose.EMAIL_CHANGE_NEW, code):
        raise EmailDeliveryFailed(f"new email code for user {user_id} not delivered")


async def verify_new_email(session: AsyncSession, user: User, *, otp: str) -> None:
    user_id = _user_id(user)
    change = await _active_change_session(session, user_id)
    pending = change.pending_new_email
    if not change.current_email_verified or not pending:
        raise StepOutOfOrder(
            f"new email otp before request for user {user_id}",
            detail="Please request a code for your new email first",
        )

    await verify_otp(session, pending, OtpPurpose.EMAIL_CHANGE_NEW, otp)
    change = await _active_change_session(session, user_id)
    change.new_email_verified = True
    session.add(change)
    await session.commit()
    logger.info("New email verified for change", extra={"user_id": user_id})


async def confirm_email_change(
    session: AsyncSession, user: User, *, new_email: str, new_password: str
) -> None:
    """Apply the new email and password and end every session.

    The email, password hash, refresh-token deletion and progress cleanup are
    committed together; on any failure none of them is applied.
    """
    user_id = _user_id(user)
    change = await _active_change_session(session, user_id)
    normalized_email = normalize_email(new_email)
    if not (change.current_email_verified and change.new_email_verified):
        raise StepOutOfOrder(
            f"confirm before both emails verified for user {user_id}",
            detail="Both email addresses must be verified first",
        )
    if change.pending_new_email != normalized_email:
        raise StepOutOfOrder(
            f"confirm email differs from verified email for user {user_id}",
            detail="New email does not match the verified address",
        )
    if await email_in_use(session, normalized_email):
        raise EmailAlreadyInUse(f"verified email taken before confirm for user {user_id}")

    old_email = user.email
    user.email = normalized_email
    set_password(user, new_password)
    session.add(user)
    await revoke_all_sessions(session, user_id)
    await _delete_change_session(session, user_id)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise EmailAlreadyInUse(f"email unique violation for user {user_id}") from exc
        raise

    logger.info(
        "Email changed",
        extra={"user_id": user_id, "email_changed": old_email != normalized_email},
    )
