"""Runtime configuration and admin-managed platform settings."""

from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from quizzardo.constants.network_constants import DEFAULT_HOST, DEFAULT_LOG_LEVEL, DEFAULT_PORT
from quizzardo.constants.quiz_constants import (
    DEFAULT_MIN_QUESTIONS_PER_QUIZ,
    DEFAULT_TIME_LIMIT_SECONDS,
    DEFAULT_VIOLATION_LIMIT,
)


class PlatformSettings(BaseModel):
    """Settings an admin can change while the platform is running."""

    time_per_question: int = Field(default=DEFAULT_TIME_LIMIT_SECONDS, gt=0)
    shuffle_options: bool = False
    allow_retakes: bool = False
    show_leaderboard: bool = True
    violation_limit: int = Field(default=DEFAULT_VIOLATION_LIMIT, gt=0)
    min_questions_per_quiz: int = Field(default=DEFAULT_MIN_QUESTIONS_PER_QUIZ, ge=1)
    answer_feedback_seconds: float = Field(default=0.0, ge=0)


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL


def load_runtime_config() -> RuntimeConfig:
    """Read server settings from the environment (and a local .env file)."""
    load_dotenv()
    return RuntimeConfig(
        host=os.getenv("QUIZZARDO_HOST", DEFAULT_HOST),
        port=int(os.getenv("QUIZZARDO_PORT", str(DEFAULT_PORT))),
        log_level=os.getenv("QUIZZARDO_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
