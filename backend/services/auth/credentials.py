"""User lookup, password verification and public user view."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, cast

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import hash_password, needs_rehash, verify_password
from models import User

from .errors import AccountDeactivated, InvalidCredentials


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


@lru_cache(maxsize=1)
def _timing_equalizer_hash() -> str:
    return hash_password("timing-equalizer")


def normalize_email(value: str) -> str:
    return value.strip().lower()


class PublicUser(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    email: str
    username: str
    is_verified: bool
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(
            id=cast(int, user.id),
            email=user.email,
            username=user.username,
            is_verified=user.is_verified,
            # Deactivation is modelled by clearing the verified flag.
            is_active=user.is_verified,
        )


async def get_user_by_id(session: AsyncSession, user_id: int) -> User | None:
    result = await session.execute(select(User).where(_eq(User.id, user_id)))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    lowered_email_column = cast(Any, func.lower(cast(Any, User.email)))
    result = await session.execute(
        select(User).where(_eq(lowered_email_column, normalize_email(email))).limit(1)
    )
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(_eq(User.username, username)).limit(1))
    return result.scalar_one_or_none()


async def email_in_use(session: AsyncSession, email: str, *, verified_only: bool = False) -> bool:
    user = await get_user_by_email(session, email)
    if user is None:
        return False
    return user.is_verified or not verified_only


async def authenticate(session: AsyncSession, *, email: str, password: str) -> User:
    """Resolve the user for an email/password pair.

    Checks run in a fixed order: unknown email, deactivated account, missing
    password hash, then the hash comparison.
    """
    user = await get_user_by_email(session, email)
    if user is None:
        # Every rejection path costs one hash comparison.
        verify_password(password, _timing_equalizer_hash())
        raise InvalidCredentials("unknown email")
    if not user.is_verified:
        verify_password(password, _timing_equalizer_hash())
        raise AccountDeactivated(f"user {user.id} is not verified")
    if not user.password_hash:
        verify_password(password, _timing_equalizer_hash())
        raise InvalidCredentials(f"user {user.id} has no password set")
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials(f"password mismatch for user {user.id}")

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    return user


def set_password(user: User, password: str) -> None:
    user.password_hash = hash_password(password)
