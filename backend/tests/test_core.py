"""Tests for configuration parsing and security primitives."""

from datetime import timedelta

import jwt
import pytest
from pydantic import ValidationError

from core import (
    create_access_token,
    decode_token,
    generate_otp_code,
    generate_refresh_token,
    hash_otp_code,
    hash_password,
    needs_rehash,
    otp_matches,
    parse_duration,
    settings,
    verify_password,
)
from core.config import DEFAULT_JWT_SECRET, Settings


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("30s", timedelta(seconds=30)),
        ("15m", timedelta(minutes=15)),
        ("24h", timedelta(hours=24)),
        ("7d", timedelta(days=7)),
        ("900", timedelta(seconds=900)),
        (60, timedelta(seconds=60)),
    ],
)
def test_parse_duration_accepts_supported_units(raw, expected) -> None:
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "15x", "-5m", "0", "soon"])
def test_parse_duration_rejects_invalid_values(raw) -> None:
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_settings_read_expiry_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRY", "5m")
    monkeypatch.setenv("REFRESH_TOKEN_EXPIRY_REMEMBER", "60d")

    loaded = Settings(_env_file=None)

    assert loaded.access_token_expiry == timedelta(minutes=5)
    assert loaded.refresh_token_expiry_remember == timedelta(days=60)
    assert loaded.access_token_ttl(False) == timedelta(minutes=5)
    assert loaded.access_token_ttl(True) == timedelta(hours=24)
    assert loaded.refresh_token_ttl(True) == timedelta(days=60)


def test_settings_require_secret_in_production(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("JWT_SECRET", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)

    monkeypatch.setenv("JWT_SECRET", "a-real-production-secret")
    loaded = Settings(_env_file=None)
    assert loaded.is_production
    assert loaded.jwt_secret != DEFAULT_JWT_SECRET


def test_access_token_round_trip_uses_string_subject() -> None:
    token = create_access_token(42)

    claims = decode_token(token)

    assert claims["sub"] == "42"
    assert claims["type"] == "access"
    assert claims["exp"] > claims["iat"]


def test_decode_token_rejects_tampered_and_expired_tokens() -> None:
    forged = jwt.encode(
        {"sub": "1", "type": "access", "iat": 0, "exp": 9999999999},
        "some-other-secret",
        algorithm="HS256",
    )
    expired = create_access_token(1, expires_delta=timedelta(seconds=-1))

    for token in (forged, expired, "not-a-jwt"):
        with pytest.raises(ValueError):
            decode_token(token)


def test_refresh_tokens_are_random_hex() -> None:
    first = generate_refresh_token()
    second = generate_refresh_token()

    assert first != second
    assert len(first) == 64
    int(first, 16)


def test_password_hashing() -> None:
    password_hash = hash_password("Sup3rSecret!")

    assert password_hash.startswith("$argon2")
    assert verify_password("Sup3rSecret!", password_hash)
    assert not verify_password("wrong", password_hash)
    assert not verify_password("Sup3rSecret!", None)
    assert not verify_password("Sup3rSecret!", "not-a-hash")
    assert not needs_rehash(password_hash)


def test_otp_codes_are_five_digits_and_hashed_per_purpose() -> None:
    code = generate_otp_code()
    assert len(code) == 5
    assert code.isdigit()

    digest = hash_otp_code("a@example.com", "registration", code)
    assert otp_matches("a@example.com", "registration", code, digest)
    assert not otp_matches("a@example.com", "password-reset", code, digest)
    assert not otp_matches("b@example.com", "registration", code, digest)


def test_default_settings_match_documented_values() -> None:
    assert settings.access_token_expiry == timedelta(minutes=15)
    assert settings.refresh_token_expiry == timedelta(days=7)
    assert settings.otp_expire_minutes == 10
    assert settings.otp_max_attempts == 5
