"""Core services behind the quiz manager facade."""

from .integrity_monitor import IntegrityMonitor, IntegritySignal
from .question_timer import QuestionTimer
from .quiz_repository import InMemoryQuizRepository, QuizRepository
from .quiz_session import AnswerFeedback, QuizSession, SessionSnapshot
from .ranking import prize_for_rank, rank_results
from .scoring import ScoringAccumulator

__all__ = [
    "AnswerFeedback",
    "InMemoryQuizRepository",
    "IntegrityMonitor",
    "IntegritySignal",
    "QuestionTimer",
    "QuizRepository",
    "QuizSession",
    "ScoringAccumulator",
    "SessionSnapshot",
    "prize_for_rank",
    "rank_results",
]
