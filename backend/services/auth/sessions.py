"""Login, refresh rotation, logout and password change."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core import verify_password
from models import User

from .credentials import authenticate, get_user_by_id, set_password
from .errors import AccountDeactivated, InvalidCredentials, InvalidRefreshToken, PasswordMismatch
from .token_issuer import IssuedTokens, issue_token_pair
from .token_store import (
    consume_refresh_token,
    delete_expired_refresh_tokens,
    delete_refresh_token,
    delete_user_refresh_tokens,
    get_refresh_token,
)

logger = logging.getLogger(__name__)


async def _purge_expired_for_user(session: AsyncSession, user_id: int) -> None:
    try:
        deleted = await delete_expired_refresh_tokens(session, user_id=user_id)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning(
            "Failed to purge expired refresh tokens",
            extra={"user_id": user_id},
            exc_info=exc,
        )
        return
    if deleted:
        logger.info(
            "Purged expired refresh tokens",
            extra={"user_id": user_id, "deleted": deleted},
        )


async def login(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    remember_me: bool = False,
) -> tuple[User, IssuedTokens]:
    user = await authenticate(session, email=email, password=password)
    user_id = user.id
    if user_id is None:
        raise InvalidCredentials("user record is missing an identifier")

    tokens = await issue_token_pair(session, user_id, remember_me=remember_me)
    await session.commit()
    logger.info("User logged in", extra={"user_id": user_id, "remember_me": remember_me})

    # Housekeeping only; the sweep job covers whatever this misses.
    await _purge_expired_for_user(session, user_id)
    return user, tokens


async def refresh(session: AsyncSession, refresh_token: str | None) -> tuple[User, IssuedTokens]:
    """Rotate ``refresh_token`` into a new pair.

    The presented row is removed with a conditional delete in the same
    transaction that inserts its replacement, so a token can be rotated at
    most once even under concurrent requests.
    """
    if not refresh_token:
        raise InvalidRefreshToken("missing refresh token", detail="Missing refresh token")

    token_obj = await get_refresh_token(session, refresh_token)
    user = await get_user_by_id(session, token_obj.user_id)
    if user is None or not user.is_verified:
        raise AccountDeactivated(f"refresh for inactive user {token_obj.user_id}")

    if not await consume_refresh_token(session, token_obj):
        await session.rollback()
        raise InvalidRefreshToken(f"refresh token {token_obj.id} already rotated")

    tokens = await issue_token_pair(session, token_obj.user_id, remember_me=token_obj.remember_me)
    await session.commit()
    logger.info("Rotated refresh token", extra={"user_id": token_obj.user_id})
    return user, tokens


async def logout(
    session: AsyncSession,
    refresh_token: str | None,
    *,
    user_id: int | None = None,
) -> None:
    """Delete the presented refresh token. Never raises."""
    if not refresh_token:
        logger.info("Logout without refresh token", extra={"user_id": user_id})
        return
    try:
        deleted = await delete_refresh_token(session, refresh_token)
        await session.commit()
    except Exception as exc:
        logger.error("Failed to revoke refresh token on logout", extra={"user_id": user_id}, exc_info=exc)
        try:
            await session.rollback()
        except Exception as rollback_exc:
            logger.error("Rollback after failed logout failed", exc_info=rollback_exc)
        return
    logger.info("User logged out", extra={"user_id": user_id, "deleted": deleted})


async def revoke_all_sessions(session: AsyncSession, user_id: int) -> int:
    """Delete every refresh token of ``user_id``; the caller commits."""
    deleted = await delete_user_refresh_tokens(session, user_id)
    logger.info("Revoked all sessions", extra={"user_id": user_id, "deleted": deleted})
    return deleted


async def change_password(
    session: AsyncSession,
    user: User,
    *,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> None:
    """Replace the password and force every session to re-authenticate."""
    if new_password != confirm_password:
        raise PasswordMismatch("new password confirmation mismatch")
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials(
            f"current password mismatch for user {user.id}",
            detail="Current password is incorrect",
        )
    user_id = user.id
    if user_id is None:
        raise InvalidCredentials("user record is missing an identifier")

    set_password(user, new_password)
    session.add(user)
    await revoke_all_sessions(session, user_id)
    await session.commit()
    logger.info("Password changed", extra={"user_id": user_id})
