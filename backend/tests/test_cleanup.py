"""Tests for expired-state cleanup: purge, scheduler, endpoint and script."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import cast

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import EmailChangeSession, OtpChallenge, OtpPurpose, RefreshToken, User, VerifiedEmailGrant
from scripts import cleanup_expired_tokens as cleanup_script
from services.auth import TokenCleanupScheduler, hash_refresh_token, purge_expired_tokens

from conftest import DEFAULT_PASSWORD

pytestmark = pytest.mark.asyncio(loop_scope="session")


async def _seed_state(db_session: AsyncSession, user_id: int) -> None:
    now = datetime.now(timezone.utc)
    past = now - timedelta(minutes=1)
    future = now + timedelta(days=1)
    db_session.add_all(
        [
            RefreshToken(
                user_id=user_id,
                token_hash=hash_refresh_token("expired"),
                issued_at=past - timedelta(days=7),
                expires_at=past,
            ),
            RefreshToken(
                user_id=user_id,
                token_hash=hash_refresh_token("live"),
                issued_at=now,
                expires_at=future,
            ),
            OtpChallenge(
                subject_email="alice@example.com",
                purpose=OtpPurpose.PASSWORD_RESET.value,
                code_hash="0" * 64,
                expires_at=past,
                created_at=past,
            ),
            VerifiedEmailGrant(
                subject_email="alice@example.com",
                purpose=OtpPurpose.PASSWORD_RESET.value,
                granted_at=past,
                expires_at=past,
            ),
            EmailChangeSession(user_id=user_id, expires_at=past),
        ]
    )
    await db_session.commit()


async def _count(db_session: AsyncSession, model) -> int:
    result = await db_session.execute(select(func.count()).select_from(model))
    return int(result.scalar_one())


async def test_purge_removes_only_expired_rows(db_session: AsyncSession, verified_user: User):
    await _seed_state(db_session, cast(int, verified_user.id))

    counts = await purge_expired_tokens(db_session)

    assert counts == {
        "refresh_tokens": 1,
        "otp_challenges": 1,
        "verified_email_grants": 1,
        "email_change_sessions": 1,
    }
    result = await db_session.execute(select(RefreshToken.token_hash))
    assert result.scalars().all() == [hash_refresh_token("live")]
    assert await _count(db_session, OtpChallenge) == 0
    assert await _count(db_session, EmailChangeSession) == 0


async def test_scheduler_run_once_purges(
    session_maker: async_sessionmaker[AsyncSession],
    db_session: AsyncSession,
    verified_user: User,
):
    await _seed_state(db_session, cast(int, verified_user.id))
    scheduler = TokenCleanupScheduler(session_maker, interval_seconds=3600)

    counts = await scheduler.run_once()

    assert counts is not None
    assert counts["refresh_tokens"] == 1
    assert await _count(db_session, RefreshToken) == 1


async def test_scheduler_survives_failed_pass():
    def _broken_factory():
        raise RuntimeError("database unavailable")

    scheduler = TokenCleanupScheduler(_broken_factory, interval_seconds=0.01)

    assert await scheduler.run_once() is None

    scheduler.start()
    await asyncio.sleep(0.05)
    assert scheduler.running
    await scheduler.stop()
    assert not scheduler.running


async def test_scheduler_runs_immediately_on_start(
    session_maker: async_sessionmaker[AsyncSession],
    db_session: AsyncSession,
    verified_user: User,
):
    await _seed_state(db_session, cast(int, verified_user.id))
    scheduler = TokenCleanupScheduler(session_maker, interval_seconds=3600)

    scheduler.start()
    try:
        for _ in range(50):
            if await _count(db_session, OtpChallenge) == 0:
                break
            await asyncio.sleep(0.02)
    finally:
        await scheduler.stop()

    assert await _count(db_session, OtpChallenge) == 0


def test_scheduler_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        TokenCleanupScheduler(lambda: None, interval_seconds=0)


async def test_cleanup_endpoint_requires_authentication(async_client):
    response = await async_client.post("/auth/tokens/cleanup")
    assert response.status_code == 401


async def test_cleanup_endpoint_purges(
    async_client, db_session: AsyncSession, verified_user: User
):
    await _seed_state(db_session, cast(int, verified_user.id))
    login = await async_client.post(
        "/auth/login", json={"email": "alice@example.com", "password": DEFAULT_PASSWORD}
    )
    assert login.status_code == 200

    response = await async_client.post("/auth/tokens/cleanup")

    assert response.status_code == 200
    assert response.json()["deleted"]["otp_challenges"] == 1
    assert await _count(db_session, VerifiedEmailGrant) == 0


async def test_cleanup_script_runs_one_pass(
    session_maker: async_sessionmaker[AsyncSession],
    db_session: AsyncSession,
    verified_user: User,
    capsys,
):
    await _seed_state(db_session, cast(int, verified_user.id))

    counts = await cleanup_script.run(session_maker)

    assert counts["email_change_sessions"] == 1
    output = capsys.readouterr().out
    assert output.startswith("Expired token cleanup complete:")
    assert "refresh_tokens=1" in output


def test_cleanup_script_summary_is_sorted():
    summary = cleanup_script.format_summary({"b": 2, "a": 1}, elapsed_ms=5)
    assert summary == "Expired token cleanup complete: a=1, b=2, elapsed_ms=5"
