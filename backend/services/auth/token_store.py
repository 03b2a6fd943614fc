"""Refresh-token persistence, rotation and revocation helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any, cast

from sqlalchemy import delete, exists, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import RefreshToken

from .errors import InvalidRefreshToken, RefreshTokenExpired, RefreshTokenRevoked


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _lt(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column < value)


def _gt(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column > value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


async def execute_delete(session: AsyncSession, stmt: Any) -> int:
    result = cast(
        CursorResult[Any],
        await session.execute(stmt.execution_options(synchronize_session=False)),
    )
    return result.rowcount or 0


async def store_refresh_token(
    session: AsyncSession,
    user_id: int,
    token: str,
    *,
    expires_at: datetime,
    remember_me: bool = False,
    issued_at: datetime | None = None,
) -> RefreshToken:
    token_obj = RefreshToken(
        user_id=user_id,
        token_hash=hash_refresh_token(token),
        remember_me=remember_me,
        issued_at=issued_at or utcnow(),
        expires_at=expires_at,
    )
    session.add(token_obj)
    await session.flush()
    return token_obj


async def find_refresh_token(session: AsyncSession, token: str) -> RefreshToken | None:
    result = await session.execute(
        select(RefreshToken).where(_eq(RefreshToken.token_hash, hash_refresh_token(token)))
    )
    return result.scalar_one_or_none()


async def get_refresh_token(session: AsyncSession, token: str) -> RefreshToken:
    """Return the stored token or raise the matching refresh error."""
    token_obj = await find_refresh_token(session, token)
    if token_obj is None:
        raise InvalidRefreshToken("refresh token not found")
    if token_obj.revoked_at is not None:
        raise RefreshTokenRevoked(f"refresh token {token_obj.id} revoked")
    if ensure_aware(token_obj.expires_at) <= utcnow():
        raise RefreshTokenExpired(f"refresh token {token_obj.id} expired")
    return token_obj


async def consume_refresh_token(session: AsyncSession, token_obj: RefreshToken) -> bool:
    """Delete ``token_obj`` if it still exists.

    Returns False when another transaction already removed the row, which is
    how concurrent rotations of one token are told apart.
    """
    deleted = await execute_delete(
        session,
        delete(RefreshToken).where(
            _eq(RefreshToken.id, token_obj.id),
            _eq(RefreshToken.token_hash, token_obj.token_hash),
        ),
    )
    return deleted == 1


async def delete_refresh_token(session: AsyncSession, token: str) -> int:
    return await execute_delete(
        session,
        delete(RefreshToken).where(_eq(RefreshToken.token_hash, hash_refresh_token(token))),
    )


async def delete_user_refresh_tokens(session: AsyncSession, user_id: int) -> int:
    return await execute_delete(
        session,
        delete(RefreshToken).where(_eq(RefreshToken.user_id, user_id)),
    )


async def delete_expired_refresh_tokens(
    session: AsyncSession,
    *,
    user_id: int | None = None,
    now: datetime | None = None,
) -> int:
    stmt = delete(RefreshToken).where(_lt(RefreshToken.expires_at, now or utcnow()))
    if user_id is not None:
        stmt = stmt.where(_eq(RefreshToken.user_id, user_id))
    return await execute_delete(session, stmt)


async def has_live_refresh_token(session: AsyncSession, user_id: int) -> bool:
    revoked_column = cast(Any, RefreshToken.revoked_at)
    stmt = select(
        exists().where(
            _eq(RefreshToken.user_id, user_id),
            cast(ColumnElement[bool], revoked_column.is_(None)),
            _gt(RefreshToken.expires_at, utcnow()),
        )
    )
    result = await session.execute(stmt)
    return bool(result.scalar())
