"""Server-side "email verified" state for registration and password reset."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, cast

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import settings
from models import OtpPurpose, VerifiedEmailGrant

from .credentials import normalize_email
from .errors import StepOutOfOrder
from .token_store import ensure_aware, utcnow


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def revoke_grant(session: AsyncSession, email: str, purpose: OtpPurpose) -> None:
    await session.execute(
        delete(VerifiedEmailGrant)
        .where(
            _eq(VerifiedEmailGrant.subject_email, normalize_email(email)),
            _eq(VerifiedEmailGrant.purpose, purpose.value),
        )
        .execution_options(synchronize_session=False)
    )


async def grant_verified_email(
    session: AsyncSession, email: str, purpose: OtpPurpose
) -> VerifiedEmailGrant:
    await revoke_grant(session, email, purpose)
    now = utcnow()
    grant = VerifiedEmailGrant(
        subject_email=normalize_email(email),
        purpose=purpose.value,
        granted_at=now,
        expires_at=now + timedelta(minutes=settings.verification_grant_ttl_minutes),
    )
    session.add(grant)
    await session.flush()
    return grant


async def require_grant(
    session: AsyncSession, email: str, purpose: OtpPurpose
) -> VerifiedEmailGrant:
    result = await session.execute(
        select(VerifiedEmailGrant).where(
            _eq(VerifiedEmailGrant.subject_email, normalize_email(email)),
            _eq(VerifiedEmailGrant.purpose, purpose.value),
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        raise StepOutOfOrder(
            f"{purpose.value} email not verified",
            detail="Please verify your email first",
        )
    if ensure_aware(grant.expires_at) <= utcnow():
        raise StepOutOfOrder(
            f"{purpose.value} verification expired",
            detail="Email verification expired, please request a new code",
        )
    return grant
