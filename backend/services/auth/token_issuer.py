"""Access/refresh token pair issuance."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from core import create_access_token, generate_refresh_token, settings

from .token_store import store_refresh_token, utcnow


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    remember_me: bool = False


async def issue_token_pair(
    session: AsyncSession,
    user_id: int,
    *,
    remember_me: bool = False,
) -> IssuedTokens:
    """Mint a signed access token and persist a fresh opaque refresh token.

    Other sessions of the user are left untouched. The caller owns the
    transaction and must commit.
    """
    now = utcnow()
    access_ttl = settings.access_token_ttl(remember_me)
    refresh_ttl = settings.refresh_token_ttl(remember_me)

    access_token = create_access_token(user_id, expires_delta=access_ttl, now=now)
    refresh_token = generate_refresh_token()
    refresh_expires_at = now + refresh_ttl
    await store_refresh_token(
        session,
        user_id,
        refresh_token,
        expires_at=refresh_expires_at,
        remember_me=remember_me,
        issued_at=now,
    )
    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        access_expires_at=now + access_ttl,
        refresh_expires_at=refresh_expires_at,
        remember_me=remember_me,
    )
