"""Server-side record of a verified email for a multi-step flow."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, String, UniqueConstraint, func
from sqlmodel import Field, SQLModel


class VerifiedEmailGrant(SQLModel, table=True):
    """Unlocks the next step of registration or password reset for an email."""

    __tablename__ = "verified_email_grants"
    __table_args__ = (
        UniqueConstraint(
            "subject_email",
            "purpose",
            name="ux_verified_email_grants_subject_purpose",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    subject_email: str = Field(
        sa_column=Column(String(255), nullable=False)
    )
    purpose: str = Field(
        sa_column=Column(String(32), nullable=False)
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    granted_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
