"""Refresh token persistence model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, false, func
from sqlmodel import Field, SQLModel


class RefreshToken(SQLModel, table=True):
    """Server-side record of an opaque refresh token.

    Only the SHA-256 digest of the token is stored. A live row for a user is
    what keeps that user's access tokens valid.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_expires_at", "user_id", "expires_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    token_hash: str = Field(
        sa_column=Column(String(64), unique=True, nullable=False)
    )
    remember_me: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=false()),
    )
    issued_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    revoked_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None
