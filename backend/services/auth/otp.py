"""Purpose-scoped one-time codes delivered by email."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, cast

from sqlalchemy import case, delete, literal, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import generate_otp_code, hash_otp_code, otp_matches, settings
from models import OtpChallenge, OtpPurpose

from .credentials import normalize_email
from .errors import OtpInvalidOrExpired
from .token_store import utcnow

logger = logging.getLogger(__name__)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _gt(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column > value)


def _is_null(column: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], cast(Any, column).is_(None))


def otp_ttl() -> timedelta:
    return timedelta(minutes=settings.otp_expire_minutes)


async def issue_otp(session: AsyncSession, email: str, purpose: OtpPurpose) -> str:
    """Create a challenge and return the plaintext code for delivery.

    Earlier challenges for the same email and purpose are discarded so only
    the latest code can be used.
    """
    subject = normalize_email(email)
    await session.execute(
        delete(OtpChallenge)
        .where(
            _eq(OtpChallenge.subject_email, subject),
            _eq(OtpChallenge.purpose, purpose.value),
        )
        .execution_options(synchronize_session=False)
    )

    code = generate_otp_code()
    now = utcnow()
    session.add(
        OtpChallenge(
            subject_email=subject,
            purpose=purpose.value,
            code_hash=hash_otp_code(subject, purpose.value, code),
            attempts=0,
            expires_at=now + otp_ttl(),
            created_at=now,
        )
    )
    await session.flush()
    logger.info("Issued one-time code", extra={"purpose": purpose.value})
    return code


async def _latest_open_challenge(
    session: AsyncSession, subject: str, purpose: OtpPurpose, now: datetime
) -> OtpChallenge | None:
    id_column = cast(Any, OtpChallenge.id)
    result = await session.execute(
        select(OtpChallenge)
        .where(
            _eq(OtpChallenge.subject_email, subject),
            _eq(OtpChallenge.purpose, purpose.value),
            _is_null(OtpChallenge.consumed_at),
            _gt(OtpChallenge.expires_at, now),
        )
        .order_by(id_column.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _record_failed_attempt(
    session: AsyncSession, challenge: OtpChallenge, now: datetime
) -> None:
    # The burn is decided from the stored counter, not the loaded row.
    attempts = cast(Any, OtpChallenge.attempts)
    consumed_at = cast(Any, OtpChallenge.consumed_at)
    await session.execute(
        update(OtpChallenge)
        .where(_eq(OtpChallenge.id, challenge.id))
        .values(
            attempts=attempts + 1,
            consumed_at=case(
                (attempts + 1 >= settings.otp_max_attempts, literal(now, consumed_at.type)),
                else_=consumed_at,
            ),
        )
        .execution_options(synchronize_session=False)
    )


async def verify_otp(
    session: AsyncSession, email: str, purpose: OtpPurpose, code: str
) -> None:
    """Consume the matching challenge or raise ``OtpInvalidOrExpired``.

    Consumption is a conditional update on ``consumed_at IS NULL`` so two
    concurrent verifications of one code cannot both succeed. A failed attempt
    is committed before raising so the attempt counter survives the error
    response; call this before any other pending writes.
    """
    subject = normalize_email(email)
    now = utcnow()
    challenge = await _latest_open_challenge(session, subject, purpose, now)
    if challenge is None:
        raise OtpInvalidOrExpired(f"no open {purpose.value} challenge")

    if not otp_matches(subject, purpose.value, code.strip(), challenge.code_hash):
        await _record_failed_attempt(session, challenge, now)
        await session.commit()
        raise OtpInvalidOrExpired(f"code mismatch on challenge {challenge.id}")

    result = cast(
        CursorResult[Any],
        await session.execute(
            update(OtpChallenge)
            .where(
                _eq(OtpChallenge.id, challenge.id),
                _is_null(OtpChallenge.consumed_at),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        ),
    )
    if (result.rowcount or 0) != 1:
        raise OtpInvalidOrExpired(f"challenge {challenge.id} already consumed")
    logger.info("Verified one-time code", extra={"purpose": purpose.value})
