"""Business logic services."""

from .email import EmailSender, LoggingEmailSender, SmtpEmailSender, get_email_sender
from .rate_limiter import (
    RateLimitMiddleware,
    RateLimiter,
    get_rate_limiter,
    set_rate_limiter,
)

__all__ = [
    "EmailSender",
    "LoggingEmailSender",
    "SmtpEmailSender",
    "get_email_sender",
    "RateLimiter",
    "RateLimitMiddleware",
    "get_rate_limiter",
    "set_rate_limiter",
]
