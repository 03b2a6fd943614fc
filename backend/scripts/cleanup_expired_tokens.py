"""Delete expired refresh tokens and other expired auth state once.

Usage:
    python scripts/cleanup_expired_tokens.py

Meant for an external cron when the in-process scheduler is disabled
(``TOKEN_CLEANUP_ENABLED=false``).
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from time import perf_counter
from typing import Any, Callable

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from core import settings  # noqa: E402
from core.logging import configure_logging  # noqa: E402
from db.session import AsyncSessionMaker  # noqa: E402
from services.auth.cleanup import purge_expired_tokens  # noqa: E402


def format_summary(counts: dict[str, int], elapsed_ms: int) -> str:
    details = ", ".join(f"{key}={value}" for key, value in sorted(counts.items()))
    return f"Expired token cleanup complete: {details}, elapsed_ms={elapsed_ms}"


async def run(session_factory: Callable[[], Any] = AsyncSessionMaker) -> dict[str, int]:
    started_at = perf_counter()
    async with session_factory() as session:
        counts = await purge_expired_tokens(session)
    elapsed_ms = int((perf_counter() - started_at) * 1000)
    print(format_summary(counts, elapsed_ms))
    return counts


def main() -> None:
    configure_logging(settings.log_level)
    asyncio.run(run())


if __name__ == "__main__":
    main()
