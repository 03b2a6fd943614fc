"""One-time code challenge model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String, func, text
from sqlmodel import Field, SQLModel


class OtpPurpose(str, Enum):
    PASSWORD_RESET = "password-reset"
    REGISTRATION = "registration"
    EMAIL_CHANGE_CURRENT = "email-change-current"
    EMAIL_CHANGE_NEW = "email-change-new"


class OtpChallenge(SQLModel, table=True):
    """Hashed code proving control of ``subject_email`` for one purpose."""

    __tablename__ = "otp_challenges"
    __table_args__ = (
        Index("ix_otp_challenges_subject_purpose", "subject_email", "purpose"),
    )

    id: int | None = Field(default=None, primary_key=True)
    subject_email: str = Field(
        sa_column=Column(String(255), nullable=False)
    )
    purpose: str = Field(
        sa_column=Column(String(32), nullable=False)
    )
    code_hash: str = Field(
        sa_column=Column(String(64), nullable=False)
    )
    attempts: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    consumed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
