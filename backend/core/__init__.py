"""Core configuration and security primitives."""

from .config import Settings, parse_duration, settings
from .security import (
    ACCESS_TOKEN_TYPE,
    create_access_token,
    decode_token,
    generate_otp_code,
    generate_refresh_token,
    hash_otp_code,
    hash_password,
    needs_rehash,
    otp_matches,
    verify_password,
)

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "Settings",
    "settings",
    "parse_duration",
    "create_access_token",
    "decode_token",
    "generate_refresh_token",
    "generate_otp_code",
    "hash_otp_code",
    "otp_matches",
    "hash_password",
    "verify_password",
    "needs_rehash",
]
