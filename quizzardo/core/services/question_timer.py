"""Per-question countdown driven by an injected scheduler."""

from __future__ import annotations

from threading import Lock
from typing import Callable

from quizzardo.constants.quiz_constants import TIMER_TICK_SECONDS
from quizzardo.core.clock import ScheduledCall, Scheduler


class QuestionTimer:
    """Counts a question's time limit down one second at a time.

    Every ``start`` bumps a generation number; ticks scheduled under an older
    generation are dropped, so nothing reaches a cancelled or restarted timer.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Callable[[int], None] | None = None,
        tick_seconds: float = TIMER_TICK_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._tick_seconds = tick_seconds
        self._lock = Lock()
        self._generation: int = 0
        self._remaining: int = 0
        self._running: bool = False
        self._pending: ScheduledCall | None = None
        self._on_expire: Callable[[], None] | None = None

    def start(self, time_limit_seconds: int, on_expire: Callable[[], None]) -> None:
        if time_limit_seconds <= 0:
            raise ValueError("Time limit must be a positive integer.")
        with self._lock:
            self._cancel_pending()
            self._generation += 1
            self._remaining = time_limit_seconds
            self._running = True
            self._on_expire = on_expire
            self._schedule(self._generation)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._running = False
            self._on_expire = None
            self._cancel_pending()

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def get_remaining_seconds(self) -> int:
        with self._lock:
            return self._remaining

    def _schedule(self, generation: int) -> None:
        self._pending = self._scheduler.call_later(
            self._tick_seconds, lambda: self._tick(generation)
        )

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _tick(self, generation: int) -> None:
        expired_callback: Callable[[], None] | None = None
        with self._lock:
            if generation != self._generation or not self._running:
                return
            self._pending = None
            self._remaining -= 1
            remaining = self._remaining
            if remaining <= 0:
                self._remaining = 0
                self._running = False
                expired_callback = self._on_expire
                self._on_expire = None
            else:
                self._schedule(generation)

        # Callbacks run outside the lock; they may restart or cancel this timer.
        if self._on_tick is not None:
            self._on_tick(remaining if remaining > 0 else 0)
        if expired_callback is not None:
            expired_callback()
