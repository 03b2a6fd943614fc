"""Database error helpers."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError indicates a unique-constraint conflict."""
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = str(original or error).lower()
    return "duplicate key" in message or "unique constraint" in message


def violated_column(error: IntegrityError, candidates: tuple[str, ...]) -> str | None:
    """Best-effort name of the column behind a unique violation.

    PostgreSQL reports the constraint name (``users_email_key``) and SQLite the
    qualified column (``users.email``); both contain the bare column name.
    """
    if not is_unique_violation(error):
        return None
    message = str(getattr(error, "orig", None) or error).lower()
    for column in candidates:
        if column.lower() in message:
            return column
    return None


__all__ = ["is_unique_violation", "violated_column"]
