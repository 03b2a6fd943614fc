"""Authentication error taxonomy.

Each error carries the HTTP status and the client-facing ``detail``. The
``reason`` is only logged, so authentication failures can share one public
message without losing the distinction internally.
"""

from __future__ import annotations

from fastapi import status


class AuthError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "Authentication error"

    def __init__(self, reason: str | None = None, *, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        self.reason = reason or self.detail
        super().__init__(self.reason)


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid credentials"


class AccountDeactivated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid credentials"


class UserNotFound(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "User not found"


class NotAuthenticated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Not authenticated"


class InvalidAccessToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid access token"


class SessionExpired(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Session expired"


class InvalidRefreshToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid refresh token"


class RefreshTokenRevoked(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Refresh token revoked"


class RefreshTokenExpired(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Refresh token expired"


class OtpInvalidOrExpired(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid or expired OTP"


class EmailAlreadyInUse(AuthError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Email already in use"


class UsernameTaken(AuthError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Username already taken"


class PasswordMismatch(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Passwords do not match"


class StepOutOfOrder(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Verification steps must be completed in order"


class EmailDeliveryFailed(AuthError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Failed to send verification email"


__all__ = [
    "AuthError",
    "InvalidCredentials",
    "AccountDeactivated",
    "UserNotFound",
    "NotAuthenticated",
    "InvalidAccessToken",
    "SessionExpired",
    "InvalidRefreshToken",
    "RefreshTokenRevoked",
    "RefreshTokenExpired",
    "OtpInvalidOrExpired",
    "EmailAlreadyInUse",
    "UsernameTaken",
    "PasswordMismatch",
    "StepOutOfOrder",
    "EmailDeliveryFailed",
]
