"""Helpers for the pre-start countdown shown while a quiz is waiting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Countdown:
    days: int
    hours: int
    minutes: int
    seconds: int

    @property
    def total_seconds(self) -> int:
        return ((self.days * 24 + self.hours) * 60 + self.minutes) * 60 + self.seconds


def countdown_until(target: datetime, now: datetime) -> Countdown:
    """Split the time left until ``target`` into display units (zero once passed)."""
    remaining = int((target - now).total_seconds())
    if remaining <= 0:
        return Countdown(0, 0, 0, 0)
    days, remaining = divmod(remaining, 86400)
    hours, remaining = divmod(remaining, 3600)
    minutes, seconds = divmod(remaining, 60)
    return Countdown(days=days, hours=hours, minutes=minutes, seconds=seconds)
