"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_session
from models import User
from services.auth import extract_access_token, validate_access_token
from services.email import EmailSender, get_email_sender


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from its access token and a live refresh token."""
    user = await validate_access_token(session, extract_access_token(request))
    request.state.user = user
    return user


def get_mailer() -> EmailSender:
    return get_email_sender()
