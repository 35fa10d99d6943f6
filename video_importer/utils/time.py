"""Clock abstraction so polling loops can run against simulated time."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import time as _time
from typing import Protocol

__all__ = ["Clock", "SystemClock", "now_utc"]


def now_utc() -> datetime:
    """Return the current UTC time with timezone information."""

    return datetime.now(UTC)


class Clock(Protocol):
    """Source of monotonic time and suspension used by polling loops."""

    def monotonic(self) -> float:
        """Return a monotonic timestamp in seconds."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""


class SystemClock:
    """Clock backed by :func:`time.monotonic` and :func:`asyncio.sleep`."""

    def monotonic(self) -> float:
        return _time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
