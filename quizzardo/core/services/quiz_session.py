"""State machine driving one participant through a timed quiz."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import partial
import logging
import random
from threading import RLock
from typing import Callable

from quizzardo.config.settings import PlatformSettings
from quizzardo.constants.quiz_constants import (
    LOAD_LEADERBOARD_ERROR_MESSAGE,
    MIN_OPTIONS_PER_QUESTION,
    SAVE_RESULT_ERROR_MESSAGE,
)
from quizzardo.core.clock import Clock, ScheduledCall, Scheduler
from quizzardo.core.countdown import Countdown, countdown_until
from quizzardo.core.errors import (
    PaymentRequiredError,
    QuizConfigurationError,
    QuizNotFoundError,
    QuizNotStartedError,
    RepositoryError,
    SessionStateError,
)
from quizzardo.core.models import Identity, LeaderboardEntry, Question, Quiz, Result, SessionStatus
from quizzardo.core.services.integrity_monitor import IntegrityMonitor, IntegritySignal
from quizzardo.core.services.question_timer import QuestionTimer
from quizzardo.core.services.quiz_repository import QuizRepository
from quizzardo.core.services.ranking import rank_results
from quizzardo.core.services.scoring import ScoringAccumulator

logger = logging.getLogger(__name__)

_OPTION_LETTERS = "ABCDEF"


@dataclass(frozen=True, slots=True)
class AnswerFeedback:
    """Shown to the player between answering and the next question."""

    correct: bool
    correct_display_index: int
    explanation: str


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view of a session for API responses."""

    quiz_id: str
    user_id: str
    status: SessionStatus
    question_index: int
    question_count: int
    question_text: str | None
    options: list[str]
    time_left: int
    score: int
    total_points: int
    answers: list[int]
    violation_count: int
    violation_limit: int
    disqualified: bool
    selected_display_index: int | None
    feedback: AnswerFeedback | None
    countdown: Countdown | None
    result: Result | None
    error_message: str | None


def validate_playable(quiz: Quiz) -> None:
    """Raise ``QuizConfigurationError`` if the quiz cannot be played."""
    if not quiz.questions:
        raise QuizConfigurationError(f"Quiz '{quiz.id}' has no questions.")
    if quiz.duration_minutes <= 0:
        raise QuizConfigurationError(f"Quiz '{quiz.id}' has no duration.")
    for position, question in enumerate(quiz.questions, start=1):
        if len(question.options) < MIN_OPTIONS_PER_QUESTION:
            raise QuizConfigurationError(f"Question {position} needs at least two options.")
        if not 0 <= question.correct_option < len(question.options):
            raise QuizConfigurationError(f"Question {position} has no valid correct option.")
        if question.points <= 0 or question.time_limit_seconds <= 0:
            raise QuizConfigurationError(
                f"Question {position} needs positive points and time limit."
            )


class QuizSession:
    """One attempt at a quiz: waiting -> started -> ended.

    The session owns its question timer, integrity monitor and scoring. Every
    transition out of ``started`` cancels the timer, drops pending advances and
    detaches the monitor, so late callbacks find nothing to mutate.
    """

    def __init__(
        self,
        quiz: Quiz,
        identity: Identity,
        repository: QuizRepository,
        clock: Clock,
        scheduler: Scheduler,
        settings: PlatformSettings | None = None,
        shuffle_seed: int | None = None,
        on_result_saved: Callable[[Result], None] | None = None,
    ) -> None:
        validate_playable(quiz)
        self._quiz = quiz
        self._questions: tuple[Question, ...] = tuple(quiz.questions)
        self._identity = identity
        self._repository = repository
        self._clock = clock
        self._scheduler = scheduler
        self._settings = settings or PlatformSettings()
        self._on_result_saved = on_result_saved
        self._lock = RLock()

        self._status = SessionStatus.WAITING
        self._question_index: int = 0
        self._scoring = ScoringAccumulator()
        self._monitor = IntegrityMonitor(self._settings.violation_limit)
        self._timer = QuestionTimer(scheduler)
        self._pending_advance: ScheduledCall | None = None
        self._selected_option: int | None = None
        self._feedback: AnswerFeedback | None = None
        self._started_at: datetime | None = None
        self._ended_at: datetime | None = None
        self._disqualified: bool = False
        self._closed: bool = False
        self._result: Result | None = None
        self._leaderboard: list[LeaderboardEntry] = []
        self._error_message: str | None = None

        # Shuffle state
        self._shuffle_rng = random.Random(shuffle_seed)
        self._current_option_order: list[int] | None = None

    # --- Transitions ---

    def start(self) -> None:
        with self._lock:
            if self._closed or self._status is not SessionStatus.WAITING:
                raise SessionStateError("Quiz session has already been started.")
            # Admins may edit or hide the quiz while the player waits.
            quiz = self._repository.get_quiz(self._quiz.id)
            if not quiz.is_active:
                raise QuizNotFoundError(f"Quiz '{quiz.id}' is not available.")
            validate_playable(quiz)
            now = self._clock.now()
            if now < quiz.start_time:
                raise QuizNotStartedError(f"Quiz '{quiz.id}' has not started yet.")
            if quiz.is_paid() and self._identity.user_id not in quiz.participants:
                raise PaymentRequiredError("Entry fee must be paid before starting this quiz.")
            self._quiz = quiz
            self._questions = tuple(quiz.questions)
            self._status = SessionStatus.STARTED
            self._started_at = now
            logger.info("User %s started quiz %s", self._identity.user_id, self._quiz.id)
            self._begin_question(0)

    def submit_answer(
        self, display_index: int, question_index: int | None = None
    ) -> AnswerFeedback | None:
        """Answer the current question; repeats and stale submissions are ignored."""
        finished: Result | None = None
        with self._lock:
            if self._closed or self._status is SessionStatus.ENDED:
                return None
            if self._status is SessionStatus.WAITING:
                raise SessionStateError("Quiz session has not started.")
            index = self._question_index
            if question_index is not None and question_index != index:
                return None
            if self._scoring.has_answered(index):
                return None

            question = self._questions[index]
            if not 0 <= display_index < len(question.options):
                raise ValueError(
                    f"Selected option must be between 0 and {len(question.options) - 1}."
                )
            original_index = self._to_original_index(display_index)
            self._scoring.submit(index, question, original_index)
            self._timer.cancel()
            self._selected_option = original_index
            feedback = self._build_feedback(question, original_index)
            self._feedback = feedback

            delay = self._settings.answer_feedback_seconds
            if delay > 0:
                self._pending_advance = self._scheduler.call_later(
                    delay, partial(self._advance_after_feedback, index)
                )
            else:
                finished = self._advance()

        if finished is not None:
            self._persist(finished)
        return feedback

    def expire_question(self, question_index: int) -> None:
        """Timer expiry for ``question_index``; duplicate or stale calls do nothing."""
        finished: Result | None = None
        with self._lock:
            if self._closed or self._status is not SessionStatus.STARTED:
                return
            if question_index != self._question_index:
                return
            if self._scoring.has_answered(question_index):
                return
            self._scoring.record_unanswered(question_index)
            finished = self._advance()
        if finished is not None:
            self._persist(finished)

    def report_signal(self, signal: IntegritySignal) -> bool:
        """Feed an integrity signal. Returns True when it disqualified the player."""
        finished: Result | None = None
        with self._lock:
            if self._closed or self._status is not SessionStatus.STARTED:
                return False
            if not self._monitor.record(signal):
                return False
            logger.info(
                "User %s disqualified from quiz %s after %d violations",
                self._identity.user_id,
                self._quiz.id,
                self._monitor.get_violation_count(),
            )
            finished = self._end(disqualified=True)
        self._persist(finished)
        return True

    def close(self) -> None:
        """Tear down timers and listeners when the player leaves the quiz."""
        with self._lock:
            self._closed = True
            self._stop_callbacks()

    # --- Queries ---

    def get_status(self) -> SessionStatus:
        with self._lock:
            return self._status

    def get_question_index(self) -> int:
        with self._lock:
            return self._question_index

    def get_current_question(self) -> Question | None:
        with self._lock:
            if self._status is not SessionStatus.STARTED:
                return None
            return self._questions[self._question_index]

    def get_display_options(self) -> list[str]:
        with self._lock:
            question = self.get_current_question()
            if question is None:
                return []
            if self._current_option_order is None:
                return list(question.options)
            return [question.options[i] for i in self._current_option_order]

    def get_score(self) -> int:
        with self._lock:
            return self._scoring.get_score()

    def get_answers(self) -> list[int]:
        with self._lock:
            return self._scoring.get_answers()

    def get_violation_count(self) -> int:
        return self._monitor.get_violation_count()

    def is_disqualified(self) -> bool:
        with self._lock:
            return self._disqualified

    def is_closed(self) -> bool:
        with self._lock:
            return self._closed

    def get_ended_at(self) -> datetime | None:
        with self._lock:
            return self._ended_at

    def get_time_left(self) -> int:
        return self._timer.get_remaining_seconds()

    def get_result(self) -> Result | None:
        with self._lock:
            return self._result

    def get_leaderboard(self) -> list[LeaderboardEntry]:
        with self._lock:
            return list(self._leaderboard)

    def get_error_message(self) -> str | None:
        with self._lock:
            return self._error_message

    def get_countdown(self) -> Countdown:
        return countdown_until(self._quiz.start_time, self._clock.now())

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            question = self.get_current_question()
            selected = None
            if self._selected_option is not None:
                selected = self._to_display_index(self._selected_option)
            return SessionSnapshot(
                quiz_id=self._quiz.id,
                user_id=self._identity.user_id,
                status=self._status,
                question_index=self._question_index,
                question_count=len(self._questions),
                question_text=question.text if question else None,
                options=self.get_display_options(),
                time_left=self._timer.get_remaining_seconds() if question else 0,
                score=self._scoring.get_score(),
                total_points=self._quiz.total_points,
                answers=self._scoring.get_answers(),
                violation_count=self._monitor.get_violation_count(),
                violation_limit=self._monitor.get_violation_limit(),
                disqualified=self._disqualified,
                selected_display_index=selected,
                feedback=self._feedback,
                countdown=self.get_countdown() if self._status is SessionStatus.WAITING else None,
                result=self._result,
                error_message=self._error_message,
            )

    def refresh_leaderboard(self) -> list[LeaderboardEntry]:
        """Re-read every stored result for the quiz and rank them."""
        try:
            results = self._repository.list_results_for_quiz(self._quiz.id)
            names = self._repository.get_user_names([r.user_id for r in results])
        except RepositoryError as exc:
            logger.warning("Could not load leaderboard for quiz %s: %s", self._quiz.id, exc)
            with self._lock:
                self._error_message = LOAD_LEADERBOARD_ERROR_MESSAGE
            return self.get_leaderboard()
        entries = rank_results(results, names, self._quiz.prize_money)
        with self._lock:
            self._leaderboard = entries
        return list(entries)

    # --- Internals (lock held) ---

    def _begin_question(self, index: int) -> None:
        self._question_index = index
        self._selected_option = None
        self._feedback = None
        self._pending_advance = None
        question = self._questions[index]
        self._shuffle_options(question)
        self._timer.start(question.time_limit_seconds, partial(self.expire_question, index))

    def _advance_after_feedback(self, question_index: int) -> None:
        finished: Result | None = None
        with self._lock:
            if self._closed or self._status is not SessionStatus.STARTED:
                return
            if question_index != self._question_index:
                return
            self._pending_advance = None
            finished = self._advance()
        if finished is not None:
            self._persist(finished)

    def _advance(self) -> Result | None:
        self._stop_callbacks(detach_monitor=False)
        next_index = self._question_index + 1
        if next_index < len(self._questions):
            self._begin_question(next_index)
            return None
        return self._end(disqualified=False)

    def _end(self, disqualified: bool) -> Result:
        self._stop_callbacks()
        self._status = SessionStatus.ENDED
        self._disqualified = disqualified
        if disqualified:
            self._scoring.force_zero()
        self._ended_at = self._clock.now()
        self._result = Result(
            user_id=self._identity.user_id,
            quiz_id=self._quiz.id,
            score=self._scoring.get_score(),
            time_spent=self._time_spent(),
            disqualified=disqualified,
            completed_at=self._ended_at,
        )
        logger.info(
            "User %s finished quiz %s with %d/%d points",
            self._identity.user_id,
            self._quiz.id,
            self._result.score,
            self._quiz.total_points,
        )
        return self._result

    def _stop_callbacks(self, detach_monitor: bool = True) -> None:
        self._timer.cancel()
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None
        if detach_monitor:
            self._monitor.detach()

    def _time_spent(self) -> int:
        """Quiz duration minus the time that was still remaining."""
        if self._started_at is None or self._ended_at is None:
            return 0
        duration = self._quiz.duration_seconds
        elapsed = (self._ended_at - self._started_at).total_seconds()
        remaining = max(0.0, duration - elapsed)
        return int(round(duration - remaining))

    def _build_feedback(self, question: Question, original_index: int) -> AnswerFeedback:
        correct = original_index == question.correct_option
        display_correct = self._to_display_index(question.correct_option)
        if correct:
            explanation = "Correct! Well done!"
        else:
            explanation = f"Incorrect. The correct answer was {_OPTION_LETTERS[display_correct]}"
        return AnswerFeedback(
            correct=correct,
            correct_display_index=display_correct,
            explanation=explanation,
        )

    def _shuffle_options(self, question: Question) -> None:
        if not self._settings.shuffle_options:
            self._current_option_order = None
            return
        order = list(range(len(question.options)))
        self._shuffle_rng.shuffle(order)
        self._current_option_order = order

    def _to_original_index(self, display_index: int) -> int:
        if self._current_option_order is None:
            return display_index
        return self._current_option_order[display_index]

    def _to_display_index(self, original_index: int) -> int:
        if self._current_option_order is None:
            return original_index
        return self._current_option_order.index(original_index)

    # --- Persistence (lock released) ---

    def _persist(self, result: Result) -> None:
        try:
            self._repository.save_result(result, overwrite=self._settings.allow_retakes)
        except (RepositoryError, QuizNotFoundError) as exc:
            logger.warning(
                "Could not save result for user %s on quiz %s: %s",
                result.user_id,
                result.quiz_id,
                exc,
            )
            with self._lock:
                self._error_message = SAVE_RESULT_ERROR_MESSAGE
        else:
            if self._on_result_saved is not None:
                self._on_result_saved(result)
        self.refresh_leaderboard()
