"""Async engine and session factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core import settings


def _connect_args(database_url: str, timeout_seconds: float) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if "+asyncpg" in database_url:
        return {"timeout": timeout_seconds, "command_timeout": timeout_seconds}
    return {}


def build_engine(database_url: str | None = None) -> AsyncEngine:
    url = database_url or settings.database_url
    return create_async_engine(
        url,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args=_connect_args(url, settings.db_timeout_seconds),
    )


async_engine = build_engine()
AsyncSessionMaker = async_sessionmaker(async_engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionMaker() as session:
        yield session
