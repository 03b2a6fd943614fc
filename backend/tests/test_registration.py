"""Tests for the three-step registration flow and one-time codes."""

from datetime import datetime, timedelta, timezone
from typing import Any, cast

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from core import settings, verify_password
from models import OtpChallenge, OtpPurpose, User, VerifiedEmailGrant
from services.auth import OtpInvalidOrExpired
from services.auth.otp import issue_otp, verify_otp

from conftest import DEFAULT_PASSWORD

pytestmark = pytest.mark.asyncio(loop_scope="session")

EMAIL = "carol@example.com"


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _details(**overrides: Any) -> dict[str, Any]:
    payload = {
        "email": EMAIL,
        "username": "carol_01",
        "password": DEFAULT_PASSWORD,
        "confirmPassword": DEFAULT_PASSWORD,
    }
    payload.update(overrides)
    return payload


async def _verify_email(async_client, mailer, email: str = EMAIL) -> None:
    sent = await async_client.post("/auth/register/email", json={"email": email})
    assert sent.status_code == 200
    verified = await async_client.post(
        "/auth/register/otp", json={"email": email, "otp": mailer.last_code(email)}
    )
    assert verified.status_code == 200


async def test_full_registration_creates_verified_user(
    async_client, mailer, db_session: AsyncSession
):
    sent = await async_client.post("/auth/register/email", json={"email": EMAIL})
    assert sent.status_code == 200
    assert sent.json()["expiresInMinutes"] == settings.otp_expire_minutes

    verified = await async_client.post(
        "/auth/register/otp", json={"email": EMAIL, "otp": mailer.last_code(EMAIL)}
    )
    assert verified.status_code == 200
    assert verified.json()["canProceed"] is True

    response = await async_client.post("/auth/register/details", json=_details())

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == EMAIL
    assert body["user"]["isVerified"] is True

    result = await db_session.execute(select(User).where(_eq(User.email, EMAIL)))
    user = result.scalar_one()
    assert user.is_verified is True
    assert user.password_hash != DEFAULT_PASSWORD
    assert verify_password(DEFAULT_PASSWORD, user.password_hash)

    grants = await db_session.execute(select(VerifiedEmailGrant))
    assert grants.scalars().all() == []

    login = await async_client.post(
        "/auth/login", json={"email": EMAIL, "password": DEFAULT_PASSWORD}
    )
    assert login.status_code == 200


async def test_details_without_verified_email_is_rejected(async_client, db_session: AsyncSession):
    response = await async_client.post("/auth/register/details", json=_details())

    assert response.status_code == 400
    result = await db_session.execute(select(User))
    assert result.scalars().all() == []


async def test_details_rejected_after_code_request_without_verification(
    async_client, mailer
):
    await async_client.post("/auth/register/email", json={"email": EMAIL})

    response = await async_client.post("/auth/register/details", json=_details())
    assert response.status_code == 400


async def test_requesting_new_code_resets_progress(async_client, mailer):
    await _verify_email(async_client, mailer)
    await async_client.post("/auth/register/email", json={"email": EMAIL})

    response = await async_client.post("/auth/register/details", json=_details())
    assert response.status_code == 400


async def test_register_email_rejects_verified_account(async_client, mailer, verified_user: User):
    response = await async_client.post(
        "/auth/register/email", json={"email": "Alice@example.com"}
    )

    assert response.status_code == 409
    assert mailer.messages == []


async def test_register_email_reports_delivery_failure(async_client, mailer):
    mailer.fail = True

    response = await async_client.post("/auth/register/email", json={"email": EMAIL})

    assert response.status_code == 503


async def test_wrong_code_is_rejected(async_client, mailer):
    await async_client.post("/auth/register/email", json={"email": EMAIL})
    code = mailer.last_code(EMAIL)
    wrong = "00000" if code != "00000" else "11111"

    response = await async_client.post(
        "/auth/register/otp", json={"email": EMAIL, "otp": wrong}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired OTP"


async def test_code_cannot_be_reused(async_client, mailer):
    await _verify_email(async_client, mailer)

    replay = await async_client.post(
        "/auth/register/otp", json={"email": EMAIL, "otp": mailer.last_code(EMAIL)}
    )
    assert replay.status_code == 400


async def test_password_mismatch_is_rejected(async_client, mailer):
    await _verify_email(async_client, mailer)

    response = await async_client.post(
        "/auth/register/details", json=_details(confirmPassword="Different1!")
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Passwords do not match"


@pytest.mark.parametrize(
    "password",
    ["Sh0rt!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigitsHere!", "NoSpecial123"],
)
async def test_weak_passwords_are_rejected(async_client, password: str):
    response = await async_client.post(
        "/auth/register/details",
        json=_details(password=password, confirmPassword=password),
    )
    assert response.status_code == 422


@pytest.mark.parametrize("username", ["ab", "has space", "dash-name", "x" * 31])
async def test_invalid_usernames_are_rejected(async_client, username: str):
    response = await async_client.post(
        "/auth/register/details", json=_details(username=username)
    )
    assert response.status_code == 422


async def test_username_taken_is_rejected(async_client, mailer, verified_user: User):
    await _verify_email(async_client, mailer)

    response = await async_client.post(
        "/auth/register/details", json=_details(username="alice")
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Username already taken"


async def test_existing_unverified_row_is_completed(
    async_client, mailer, db_session: AsyncSession
):
    placeholder = User(email=EMAIL, username="pending_carol", is_verified=False)
    db_session.add(placeholder)
    await db_session.commit()
    placeholder_id = placeholder.id

    await _verify_email(async_client, mailer)
    response = await async_client.post("/auth/register/details", json=_details())

    assert response.status_code == 201
    assert response.json()["user"]["id"] == placeholder_id
    db_session.expire_all()
    result = await db_session.execute(select(User))
    users = result.scalars().all()
    assert len(users) == 1
    assert users[0].username == "carol_01"
    assert users[0].is_verified is True


async def test_expired_grant_blocks_details(async_client, mailer, db_session: AsyncSession):
    await _verify_email(async_client, mailer)
    await db_session.execute(
        update(VerifiedEmailGrant).values(
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
        )
    )
    await db_session.commit()

    response = await async_client.post("/auth/register/details", json=_details())
    assert response.status_code == 400


async def test_otp_is_burned_after_max_attempts(db_session: AsyncSession):
    code = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    await db_session.commit()
    wrong = "00000" if code != "00000" else "11111"

    for _ in range(settings.otp_max_attempts):
        with pytest.raises(OtpInvalidOrExpired):
            await verify_otp(db_session, EMAIL, OtpPurpose.REGISTRATION, wrong)

    with pytest.raises(OtpInvalidOrExpired):
        await verify_otp(db_session, EMAIL, OtpPurpose.REGISTRATION, code)

    db_session.expire_all()
    challenge = (await db_session.execute(select(OtpChallenge))).scalar_one()
    assert challenge.attempts == settings.otp_max_attempts
    assert challenge.consumed_at is not None


async def test_expired_otp_is_rejected(db_session: AsyncSession):
    code = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    await db_session.execute(
        update(OtpChallenge).values(
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
        )
    )
    await db_session.commit()

    with pytest.raises(OtpInvalidOrExpired):
        await verify_otp(db_session, EMAIL, OtpPurpose.REGISTRATION, code)


async def test_otp_is_scoped_to_purpose(db_session: AsyncSession):
    code = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    await db_session.commit()

    with pytest.raises(OtpInvalidOrExpired):
        await verify_otp(db_session, EMAIL, OtpPurpose.PASSWORD_RESET, code)


async def test_only_latest_code_is_accepted(db_session: AsyncSession):
    first = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    second = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    await db_session.commit()

    if first != second:
        with pytest.raises(OtpInvalidOrExpired):
            await verify_otp(db_session, EMAIL, OtpPurpose.REGISTRATION, first)
    await verify_otp(db_session, EMAIL, OtpPurpose.REGISTRATION, second)
    await db_session.commit()

    challenges = (await db_session.execute(select(OtpChallenge))).scalars().all()
    assert len(challenges) == 1
    assert challenges[0].code_hash not in {first, second}


async def test_concurrent_verifications_let_only_one_succeed(
    session_maker: async_sessionmaker[AsyncSession], db_session: AsyncSession, monkeypatch
):
    from services.auth import otp

    code = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    await db_session.commit()

    async with session_maker() as first, session_maker() as second:
        stale = await otp._latest_open_challenge(
            second, EMAIL, OtpPurpose.REGISTRATION, datetime.now(timezone.utc)
        )
        assert stale is not None

        await verify_otp(first, EMAIL, OtpPurpose.REGISTRATION, code)
        await first.commit()

        async def _stale_lookup(*_args, **_kwargs):
            return stale

        monkeypatch.setattr(otp, "_latest_open_challenge", _stale_lookup)

        with pytest.raises(OtpInvalidOrExpired):
            await verify_otp(second, EMAIL, OtpPurpose.REGISTRATION, code)
        await second.rollback()


async def test_burn_uses_stored_attempt_count(
    session_maker: async_sessionmaker[AsyncSession], db_session: AsyncSession
):
    from services.auth import otp

    code = await issue_otp(db_session, EMAIL, OtpPurpose.REGISTRATION)
    await db_session.commit()
    wrong = "00000" if code != "00000" else "11111"

    async with session_maker() as guesser:
        loaded = await otp._latest_open_challenge(
            guesser, EMAIL, OtpPurpose.REGISTRATION, datetime.now(timezone.utc)
        )
        assert loaded is not None and loaded.attempts == 0

        await db_session.execute(
            update(OtpChallenge).values(attempts=settings.otp_max_attempts - 1)
        )
        await db_session.commit()

        await otp._record_failed_attempt(guesser, loaded, datetime.now(timezone.utc))
        await guesser.commit()

    db_session.expire_all()
    challenge = (await db_session.execute(select(OtpChallenge))).scalar_one()
    assert challenge.attempts == settings.otp_max_attempts
    assert challenge.consumed_at is not None

    with pytest.raises(OtpInvalidOrExpired):
        await verify_otp(db_session, EMAIL, OtpPurpose.REGISTRATION, wrong)
