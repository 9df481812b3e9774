"""Shared fixtures: a controllable clock and scheduler plus quiz builders."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from quizzardo.core.models import Identity, Question, Quiz, QuizType
from quizzardo.core.services.quiz_repository import InMemoryQuizRepository

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@dataclass
class ManualCall:
    due: float
    callback: Callable[[], None]
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Runs scheduled callbacks only when the test advances time."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.elapsed = 0.0
        self._calls: list[ManualCall] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualCall:
        call = ManualCall(due=self.elapsed + delay, callback=callback)
        self._calls.append(call)
        return call

    def pending(self) -> int:
        return sum(1 for call in self._calls if not call.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.elapsed + seconds
        while True:
            due = [c for c in self._calls if not c.cancelled and c.due <= target]
            if not due:
                break
            call = min(due, key=lambda c: c.due)
            self._calls.remove(call)
            self.clock.advance(call.due - self.elapsed)
            self.elapsed = call.due
            call.callback()
        self.clock.advance(target - self.elapsed)
        self.elapsed = target


def make_question(
    correct_option: int = 0, points: int = 10, time_limit_seconds: int = 30
) -> Question:
    return Question(
        text="What is $2 + 2$?",
        options=("4", "3", "5", "22"),
        correct_option=correct_option,
        points=points,
        time_limit_seconds=time_limit_seconds,
    )


def make_quiz(
    quiz_id: str = "quiz-1",
    questions: list[Question] | None = None,
    start_time: datetime = T0 - timedelta(minutes=1),
    quiz_type: QuizType = QuizType.FREE,
    prize_money: list[float] | None = None,
    duration_minutes: int = 10,
) -> Quiz:
    return Quiz(
        id=quiz_id,
        title="General Knowledge",
        type=quiz_type,
        start_time=start_time,
        duration_minutes=duration_minutes,
        questions=questions if questions is not None else [make_question(), make_question()],
        entry_fee=50.0 if quiz_type is QuizType.PAID else 0.0,
        prize_money=prize_money if prize_money is not None else [500.0, 300.0, 200.0],
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def repository() -> InMemoryQuizRepository:
    return InMemoryQuizRepository()


@pytest.fixture
def player() -> Identity:
    return Identity(user_id="user-a", display_name="Asha")


@pytest.fixture
def admin() -> Identity:
    return Identity(user_id="admin-1", display_name="Admin", is_admin=True)
