"""Client-side anti-cheat counters for a running quiz session.

Signals are reported by the client (tab hidden, fullscreen exited, blocked
context menu or shortcut). Only the first two count as violations. This is a
nudge for honest players rather than a security boundary: the client can
simply stop reporting.
"""

from __future__ import annotations

from enum import Enum
from threading import Lock

from quizzardo.constants.quiz_constants import DEFAULT_VIOLATION_LIMIT


class IntegritySignal(str, Enum):
    VISIBILITY_LOST = "visibility_lost"
    FULLSCREEN_EXITED = "fullscreen_exited"
    CONTEXT_MENU = "context_menu"
    SHORTCUT_KEY = "shortcut_key"

    @property
    def is_penalized(self) -> bool:
        return self in (IntegritySignal.VISIBILITY_LOST, IntegritySignal.FULLSCREEN_EXITED)


class IntegrityMonitor:
    """Counts violations and reports disqualification once the limit is hit."""

    def __init__(self, violation_limit: int = DEFAULT_VIOLATION_LIMIT) -> None:
        if violation_limit <= 0:
            raise ValueError("Violation limit must be a positive integer.")
        self._lock = Lock()
        self._violation_limit = violation_limit
        self._violation_count: int = 0
        self._blocked_attempts: int = 0
        self._attached: bool = True
        self._disqualified: bool = False

    def record(self, signal: IntegritySignal) -> bool:
        """Register a signal. Returns True only on the call that disqualifies."""
        with self._lock:
            if not self._attached or self._disqualified:
                return False
            if not signal.is_penalized:
                self._blocked_attempts += 1
                return False
            self._violation_count += 1
            if self._violation_count >= self._violation_limit:
                self._disqualified = True
                return True
            return False

    def detach(self) -> None:
        with self._lock:
            self._attached = False

    def is_attached(self) -> bool:
        with self._lock:
            return self._attached

    def is_disqualified(self) -> bool:
        with self._lock:
            return self._disqualified

    def get_violation_count(self) -> int:
        with self._lock:
            return self._violation_count

    def get_blocked_attempts(self) -> int:
        with self._lock:
            return self._blocked_attempts

    def get_violation_limit(self) -> int:
        return self._violation_limit
