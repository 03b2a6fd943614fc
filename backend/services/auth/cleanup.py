"""Periodic removal of expired auth state."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, cast

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import EmailChangeSession, OtpChallenge, VerifiedEmailGrant

from .token_store import execute_delete, delete_expired_refresh_tokens, utcnow

logger = logging.getLogger(__name__)


def _lt(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column < value)


async def purge_expired_tokens(
    session: AsyncSession, *, now: datetime | None = None
) -> dict[str, int]:
    """Delete every expired row of auth state and commit.

    Returns the number of rows removed per kind.
    """
    cutoff = now or utcnow()
    counts = {
        "refresh_tokens": await delete_expired_refresh_tokens(session, now=cutoff),
        "otp_challenges": await execute_delete(
            session, delete(OtpChallenge).where(_lt(OtpChallenge.expires_at, cutoff))
        ),
        "verified_email_grants": await execute_delete(
            session,
            delete(VerifiedEmailGrant).where(_lt(VerifiedEmailGrant.expires_at, cutoff)),
        ),
        "email_change_sessions": await execute_delete(
            session,
            delete(EmailChangeSession).where(_lt(EmailChangeSession.expires_at, cutoff)),
        ),
    }
    await session.commit()
    logger.info("Purged expired auth state", extra=counts)
    return counts


class TokenCleanupScheduler:
    """Runs ``purge_expired_tokens`` on a fixed interval in a background task.

    A failed pass is logged and the next one still runs on schedule.
    """

    def __init__(
        self,
        session_factory: Callable[[], Any],
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> dict[str, int] | None:
        try:
            async with self.session_factory() as session:
                return await purge_expired_tokens(session)
        except Exception as exc:
            logger.error("Expired token cleanup failed", exc_info=exc)
            return None

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="token-cleanup")
        logger.info(
            "Token cleanup scheduler started",
            extra={"interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Token cleanup scheduler stopped")
