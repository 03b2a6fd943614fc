"""SQLModel models package."""

from .email_change_session import EmailChangeSession
from .otp_challenge import OtpChallenge, OtpPurpose
from .refresh_token import RefreshToken
from .user import User
from .verified_email_grant import VerifiedEmailGrant

__all__ = [
    "User",
    "RefreshToken",
    "OtpChallenge",
    "OtpPurpose",
    "VerifiedEmailGrant",
    "EmailChangeSession",
]
