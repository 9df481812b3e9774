"""Time sources and scheduled callbacks used by quiz sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Timer
from typing import Callable, Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback later; asyncio loops also fit."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class ThreadingScheduler:
    """Runs each callback on its own daemon timer thread."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer:
        timer = Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer
