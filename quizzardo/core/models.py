"""Domain models for the quiz platform."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

UNANSWERED: int = -1


class QuizType(str, Enum):
    FREE = "free"
    PAID = "paid"


class SessionStatus(str, Enum):
    WAITING = "waiting"
    STARTED = "started"
    ENDED = "ended"


@dataclass(frozen=True, slots=True)
class Question:
    """Multiple-choice question; never mutated once a quiz is running."""

    text: str
    options: tuple[str, ...]
    correct_option: int
    points: int
    time_limit_seconds: int


@dataclass(slots=True)
class Quiz:
    """Quiz definition as created by an admin."""

    id: str
    title: str
    type: QuizType
    start_time: datetime
    duration_minutes: int
    questions: list[Question] = field(default_factory=list)
    description: str = ""
    entry_fee: float = 0.0
    prize_money: list[float] = field(default_factory=list)
    participants: set[str] = field(default_factory=set)
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime | None = None
    prizes_settled: bool = False

    @property
    def total_points(self) -> int:
        return sum(question.points for question in self.questions)

    @property
    def total_prize(self) -> float:
        return sum(self.prize_money)

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def is_paid(self) -> bool:
        return self.type is QuizType.PAID


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller as reported by the identity provider."""

    user_id: str
    display_name: str
    is_admin: bool = False


@dataclass(frozen=True, slots=True)
class Result:
    """Final outcome of one user's attempt at a quiz."""

    user_id: str
    quiz_id: str
    score: int
    time_spent: int
    disqualified: bool
    completed_at: datetime


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    """Ranked view of a result; recomputed on demand, never stored."""

    user_id: str
    user_name: str
    score: int
    time_spent: int
    rank: int
    prize: float = 0.0
    disqualified: bool = False


@dataclass(slots=True)
class UserProfile:
    user_id: str
    name: str
    is_admin: bool = False
    quizzes_played: int = 0
    total_winnings: float = 0.0
