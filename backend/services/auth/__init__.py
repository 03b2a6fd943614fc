"""Authentication domain services."""

from .cleanup import TokenCleanupScheduler, purge_expired_tokens
from .cookies import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    clear_token_cookies,
    extract_access_token,
    extract_refresh_token,
    set_token_cookies,
)
from .credentials import PublicUser, normalize_email
from .errors import (
    AccountDeactivated,
    AuthError,
    EmailAlreadyInUse,
    EmailDeliveryFailed,
    InvalidAccessToken,
    InvalidCredentials,
    InvalidRefreshToken,
    NotAuthenticated,
    OtpInvalidOrExpired,
    PasswordMismatch,
    RefreshTokenExpired,
    RefreshTokenRevoked,
    SessionExpired,
    StepOutOfOrder,
    UserNotFound,
    UsernameTaken,
)
from .session_validator import peek_user_id, validate_access_token
from .token_issuer import IssuedTokens, issue_token_pair
from .token_store import ensure_aware, get_refresh_token, hash_refresh_token, store_refresh_token

__all__ = [
    "ACCESS_COOKIE",
    "REFRESH_COOKIE",
    "clear_token_cookies",
    "extract_access_token",
    "extract_refresh_token",
    "set_token_cookies",
    "PublicUser",
    "normalize_email",
    "AuthError",
    "AccountDeactivated",
    "EmailAlreadyInUse",
    "EmailDeliveryFailed",
    "InvalidAccessToken",
    "InvalidCredentials",
    "InvalidRefreshToken",
    "NotAuthenticated",
    "OtpInvalidOrExpired",
    "PasswordMismatch",
    "RefreshTokenExpired",
    "RefreshTokenRevoked",
    "SessionExpired",
    "StepOutOfOrder",
    "UserNotFound",
    "UsernameTaken",
    "peek_user_id",
    "validate_access_token",
    "IssuedTokens",
    "issue_token_pair",
    "ensure_aware",
    "get_refresh_token",
    "hash_refresh_token",
    "store_refresh_token",
    "TokenCleanupScheduler",
    "purge_expired_tokens",
]
