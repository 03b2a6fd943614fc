"""HTTP cookie helpers for auth token transport."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from fastapi import Request, Response

from core import settings

if TYPE_CHECKING:
    from .token_issuer import IssuedTokens

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
COOKIE_PATH = "/"
COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "strict"


def cookie_secure() -> bool:
    return settings.is_production and not settings.allow_insecure_http_cookies


def set_token_cookies(response: Response, tokens: IssuedTokens) -> None:
    secure = cookie_secure()
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=tokens.access_token,
        httponly=True,
        secure=secure,
        samesite=COOKIE_SAMESITE,
        max_age=int(settings.access_token_ttl(tokens.remember_me).total_seconds()),
        path=COOKIE_PATH,
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        secure=secure,
        samesite=COOKIE_SAMESITE,
        max_age=int(settings.refresh_token_ttl(tokens.remember_me).total_seconds()),
        path=COOKIE_PATH,
    )


def clear_token_cookies(response: Response) -> None:
    secure = cookie_secure()
    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            key=key,
            path=COOKIE_PATH,
            secure=secure,
            httponly=True,
            samesite=COOKIE_SAMESITE,
        )


def extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = value.strip()
    return token or None


def extract_access_token(request: Request) -> str | None:
    """Access token from the cookie, falling back to ``Authorization: Bearer``."""
    return request.cookies.get(ACCESS_COOKIE) or extract_bearer_token(request)


def extract_refresh_token(request: Request) -> str | None:
    return request.cookies.get(REFRESH_COOKIE) or None
