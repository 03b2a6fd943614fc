"""Access-token validation backed by live refresh-token state.

A signed, unexpired access token is not enough on its own: the owner must
also hold at least one unrevoked, unexpired refresh token. Deleting a user's
refresh tokens therefore invalidates their outstanding access tokens on the
next request, at the price of one extra query per protected request.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from core import ACCESS_TOKEN_TYPE, decode_token
from models import User

from .credentials import get_user_by_id
from .errors import AccountDeactivated, InvalidAccessToken, NotAuthenticated, SessionExpired, UserNotFound
from .token_store import has_live_refresh_token


def subject_from_claims(claims: dict) -> int:
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidAccessToken(f"unexpected token type {claims.get('type')!r}")
    subject = claims.get("sub")
    try:
        return int(subject)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidAccessToken("token subject is not a user id") from exc


def peek_user_id(token: str | None) -> int | None:
    """User id of a verifying access token, without touching the database."""
    if not token:
        return None
    try:
        return subject_from_claims(decode_token(token))
    except (ValueError, InvalidAccessToken):
        return None


async def validate_access_token(session: AsyncSession, token: str | None) -> User:
    if not token:
        raise NotAuthenticated("no access token presented")
    try:
        claims = decode_token(token)
    except ValueError as exc:
        raise InvalidAccessToken("access token failed verification") from exc

    user_id = subject_from_claims(claims)
    user = await get_user_by_id(session, user_id)
    if user is None:
        raise UserNotFound(f"user {user_id} not found")
    if not user.is_verified:
        raise AccountDeactivated(f"user {user_id} is not verified", detail="Account deactivated")
    if not await has_live_refresh_token(session, user_id):
        raise SessionExpired(f"no live refresh token for user {user_id}")
    return user
