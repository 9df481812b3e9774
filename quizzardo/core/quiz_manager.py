"""Business logic shared by the API: quiz administration, joining and sessions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
import logging
from threading import Lock
from uuid import uuid4

from quizzardo.config.settings import PlatformSettings
from quizzardo.constants.quiz_constants import (
    FINISHED_SESSION_RETENTION_SECONDS,
    MAX_OPTIONS_PER_QUESTION,
    MIN_OPTIONS_PER_QUESTION,
    PRIZE_POSITIONS,
)
from quizzardo.core.clock import Clock, Scheduler, SystemClock, ThreadingScheduler
from quizzardo.core.errors import (
    AlreadyAttemptedError,
    PaymentRequiredError,
    QuizNotFoundError,
    QuizValidationError,
    SessionStateError,
)
from quizzardo.core.models import (
    Identity,
    LeaderboardEntry,
    Question,
    Quiz,
    QuizType,
    Result,
    SessionStatus,
    UserProfile,
)
from quizzardo.core.quiz_exporter import serialize_questions
from quizzardo.core.quiz_importer import parse_quiz_text
from quizzardo.core.services.integrity_monitor import IntegritySignal
from quizzardo.core.services.quiz_repository import InMemoryQuizRepository, QuizRepository
from quizzardo.core.services.quiz_session import AnswerFeedback, QuizSession, SessionSnapshot
from quizzardo.core.services.ranking import rank_results

logger = logging.getLogger(__name__)


def _is_live(session: QuizSession | None) -> bool:
    return (
        session is not None
        and not session.is_closed()
        and session.get_status() is not SessionStatus.ENDED
    )


@dataclass(slots=True)
class QuizDraft:
    """Admin input for creating or replacing a quiz."""

    title: str
    type: QuizType
    start_time: datetime
    duration_minutes: int
    questions: list[Question] = field(default_factory=list)
    description: str = ""
    entry_fee: float = 0.0
    prize_money: list[float] = field(default_factory=list)


class QuizManager:
    """Facade over the repository and the live quiz sessions."""

    def __init__(
        self,
        repository: QuizRepository | None = None,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._lock = Lock()
        self._user_lock = Lock()
        self._settlement_lock = Lock()
        self._repository = repository or InMemoryQuizRepository()
        self._clock = clock or SystemClock()
        self._scheduler = scheduler or ThreadingScheduler()
        self._sessions: dict[tuple[str, str], QuizSession] = {}

    # --- Users ---

    def register_user(self, identity: Identity) -> UserProfile:
        with self._user_lock:
            profile = self._repository.get_user(identity.user_id)
            if profile is None:
                profile = UserProfile(
                    user_id=identity.user_id,
                    name=identity.display_name,
                    is_admin=identity.is_admin,
                )
            else:
                profile.name = identity.display_name or profile.name
                profile.is_admin = identity.is_admin
            self._repository.save_user(profile)
            return profile

    def get_user_profile(self, user_id: str) -> UserProfile | None:
        return self._repository.get_user(user_id)

    def list_users(self) -> list[UserProfile]:
        return self._repository.list_users()

    # --- Settings ---

    def get_settings(self) -> PlatformSettings:
        return self._repository.get_settings()

    def update_settings(self, settings: PlatformSettings) -> PlatformSettings:
        self._repository.save_settings(settings)
        logger.info("Platform settings updated: %s", settings.model_dump())
        return self._repository.get_settings()

    # --- Quiz administration ---

    def list_quizzes(self, include_inactive: bool = False) -> list[Quiz]:
        quizzes = self._repository.list_quizzes()
        if include_inactive:
            return quizzes
        return [quiz for quiz in quizzes if quiz.is_active]

    def get_quiz(self, quiz_id: str) -> Quiz:
        return self._repository.get_quiz(quiz_id)

    def create_quiz(self, draft: QuizDraft, created_by: str) -> Quiz:
        prepared = self._prepare_draft(draft)
        quiz = Quiz(
            id=uuid4().hex,
            title=prepared.title,
            type=prepared.type,
            start_time=prepared.start_time,
            duration_minutes=prepared.duration_minutes,
            questions=prepared.questions,
            description=prepared.description,
            entry_fee=prepared.entry_fee,
            prize_money=prepared.prize_money,
            created_by=created_by,
            created_at=self._clock.now(),
        )
        self._repository.add_quiz(quiz)
        logger.info("Quiz %s (%s) created by %s", quiz.id, quiz.title, created_by)
        return quiz

    def update_quiz(self, quiz_id: str, draft: QuizDraft) -> Quiz:
        existing = self._repository.get_quiz(quiz_id)
        self._ensure_not_started(existing)
        prepared = self._prepare_draft(draft)
        updated = replace(
            existing,
            title=prepared.title,
            type=prepared.type,
            start_time=prepared.start_time,
            duration_minutes=prepared.duration_minutes,
            questions=prepared.questions,
            description=prepared.description,
            entry_fee=prepared.entry_fee,
            prize_money=prepared.prize_money,
        )
        self._repository.update_quiz(updated)
        self._evict_waiting_sessions(quiz_id)
        return updated

    def delete_quiz(self, quiz_id: str) -> None:
        self._repository.delete_quiz(quiz_id)
        with self._lock:
            doomed = [key for key in self._sessions if key[0] == quiz_id]
            sessions = [self._sessions.pop(key) for key in doomed]
        for session in sessions:
            session.close()
        logger.info("Quiz %s deleted", quiz_id)

    def set_quiz_active(self, quiz_id: str, active: bool) -> Quiz:
        quiz = self._repository.get_quiz(quiz_id)
        quiz.is_active = active
        self._repository.update_quiz(quiz)
        if not active:
            self._evict_waiting_sessions(quiz_id)
        return quiz

    def import_questions(self, quiz_id: str, text: str) -> Quiz:
        """Append questions parsed from the text import format."""
        quiz = self._repository.get_quiz(quiz_id)
        self._ensure_not_started(quiz)
        settings = self.get_settings()
        parsed = parse_quiz_text(text, default_time_limit=settings.time_per_question)
        quiz.questions = [*quiz.questions, *parsed]
        self._repository.update_quiz(quiz)
        return quiz

    def export_questions(self, quiz_id: str) -> str:
        return serialize_questions(self._repository.get_quiz(quiz_id).questions)

    # --- Participation ---

    def join_quiz(self, quiz_id: str, identity: Identity, payment_confirmed: bool = False) -> Quiz:
        quiz = self._get_active_quiz(quiz_id)
        if quiz.is_paid() and not payment_confirmed:
            raise PaymentRequiredError(
                f"Quiz '{quiz.title}' requires an entry fee of {quiz.entry_fee:g}."
            )
        self.register_user(identity)
        self._repository.add_participant(quiz_id, identity.user_id)
        return self._repository.get_quiz(quiz_id)

    def open_session(
        self, quiz_id: str, identity: Identity, shuffle_seed: int | None = None
    ) -> QuizSession:
        """Return the player's live session for the quiz, creating it if needed."""
        key = (quiz_id, identity.user_id)
        with self._lock:
            self._prune_finished_sessions()
            existing = self._sessions.get(key)
            if _is_live(existing):
                return existing

        quiz = self._get_active_quiz(quiz_id)
        settings = self.get_settings()
        if not settings.allow_retakes and self._repository.get_result(quiz_id, identity.user_id):
            raise AlreadyAttemptedError("You have already completed this quiz.")
        self.register_user(identity)
        session = QuizSession(
            quiz=quiz,
            identity=identity,
            repository=self._repository,
            clock=self._clock,
            scheduler=self._scheduler,
            settings=settings,
            shuffle_seed=shuffle_seed,
            on_result_saved=self._record_quiz_played,
        )
        with self._lock:
            current = self._sessions.get(key)
            if _is_live(current):
                return current
            self._sessions[key] = session
        return session

    def start_session(self, quiz_id: str, identity: Identity) -> SessionSnapshot:
        session = self.open_session(quiz_id, identity)
        if session.get_status() is SessionStatus.ENDED:
            raise SessionStateError("This quiz attempt has already ended.")
        session.start()
        return session.snapshot()

    def get_session(self, quiz_id: str, user_id: str) -> QuizSession:
        with self._lock:
            session = self._sessions.get((quiz_id, user_id))
        if session is None:
            raise SessionStateError("No quiz session is open for this user.")
        return session

    def submit_answer(
        self,
        quiz_id: str,
        user_id: str,
        display_index: int,
        question_index: int | None = None,
    ) -> AnswerFeedback | None:
        return self.get_session(quiz_id, user_id).submit_answer(display_index, question_index)

    def report_signal(self, quiz_id: str, user_id: str, signal: IntegritySignal) -> bool:
        return self.get_session(quiz_id, user_id).report_signal(signal)

    def close_session(self, quiz_id: str, user_id: str) -> None:
        with self._lock:
            session = self._sessions.pop((quiz_id, user_id), None)
        if session is not None:
            session.close()

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    # --- Leaderboard & prizes ---

    def get_leaderboard(self, quiz_id: str) -> list[LeaderboardEntry]:
        quiz = self._repository.get_quiz(quiz_id)
        results = self._repository.list_results_for_quiz(quiz_id)
        names = self._repository.get_user_names([r.user_id for r in results])
        return rank_results(results, names, quiz.prize_money)

    def settle_prizes(self, quiz_id: str) -> list[LeaderboardEntry]:
        """Credit winnings to the top places once the quiz window has closed."""
        with self._settlement_lock:
            quiz = self._repository.get_quiz(quiz_id)
            if quiz.prizes_settled:
                raise SessionStateError(f"Prizes for quiz '{quiz_id}' were already settled.")
            if self._clock.now() < quiz.end_time:
                raise SessionStateError(f"Quiz '{quiz_id}' is still running.")
            entries = self.get_leaderboard(quiz_id)
            for entry in entries:
                if entry.prize <= 0:
                    continue
                self._credit_winnings(entry)
            quiz.prizes_settled = True
            self._repository.update_quiz(quiz)
            logger.info("Prizes settled for quiz %s", quiz_id)
            return entries

    # --- Helpers ---

    def _record_quiz_played(self, result: Result) -> None:
        with self._user_lock:
            profile = self._repository.get_user(result.user_id)
            if profile is None:
                return
            profile.quizzes_played += 1
            self._repository.save_user(profile)

    def _credit_winnings(self, entry: LeaderboardEntry) -> None:
        with self._user_lock:
            profile = self._repository.get_user(entry.user_id) or UserProfile(
                user_id=entry.user_id, name=entry.user_name
            )
            profile.total_winnings += entry.prize
            self._repository.save_user(profile)

    def _evict_waiting_sessions(self, quiz_id: str) -> None:
        """Close sessions that have not started yet so players reopen on fresh data."""
        with self._lock:
            doomed = [
                key
                for key, session in self._sessions.items()
                if key[0] == quiz_id and session.get_status() is SessionStatus.WAITING
            ]
            sessions = [self._sessions.pop(key) for key in doomed]
        for session in sessions:
            session.close()

    def _prune_finished_sessions(self) -> None:
        """Drop closed sessions and ended ones past the retention window (lock held)."""
        cutoff = self._clock.now() - timedelta(seconds=FINISHED_SESSION_RETENTION_SECONDS)
        for key, session in list(self._sessions.items()):
            ended_at = session.get_ended_at()
            if session.is_closed() or (ended_at is not None and ended_at <= cutoff):
                del self._sessions[key]

    def _get_active_quiz(self, quiz_id: str) -> Quiz:
        quiz = self._repository.get_quiz(quiz_id)
        if not quiz.is_active:
            raise QuizNotFoundError(f"Quiz '{quiz_id}' is not available.")
        return quiz

    def _ensure_not_started(self, quiz: Quiz) -> None:
        if self._clock.now() >= quiz.start_time:
            raise QuizValidationError("Questions cannot change once the quiz has started.")

    def _prepare_draft(self, draft: QuizDraft) -> QuizDraft:
        """Validate and normalize admin input before storage."""
        settings = self.get_settings()
        title = draft.title.strip()
        if not title:
            raise QuizValidationError("Quiz title must not be empty.")
        if len(draft.questions) < settings.min_questions_per_quiz:
            raise QuizValidationError(
                f"Quiz must have at least {settings.min_questions_per_quiz} questions."
            )
        start_time = draft.start_time
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        if start_time <= self._clock.now():
            raise QuizValidationError("Start time must be in the future.")
        if draft.duration_minutes <= 0:
            raise QuizValidationError("Duration must be a positive number of minutes.")
        if draft.entry_fee < 0:
            raise QuizValidationError("Entry fee cannot be negative.")
        if draft.type is QuizType.PAID and draft.entry_fee <= 0:
            raise QuizValidationError("Paid quizzes need a positive entry fee.")
        if len(draft.prize_money) > PRIZE_POSITIONS:
            raise QuizValidationError(f"At most {PRIZE_POSITIONS} prizes can be configured.")
        if any(prize < 0 for prize in draft.prize_money):
            raise QuizValidationError("Prize amounts cannot be negative.")

        return QuizDraft(
            title=title,
            type=draft.type,
            start_time=start_time,
            duration_minutes=draft.duration_minutes,
            questions=[self._prepare_question(q) for q in draft.questions],
            description=draft.description.strip(),
            entry_fee=draft.entry_fee if draft.type is QuizType.PAID else 0.0,
            prize_money=[float(prize) for prize in draft.prize_money],
        )

    @staticmethod
    def _prepare_question(question: Question) -> Question:
        cleaned_text = question.text.strip()
        if not cleaned_text:
            raise QuizValidationError("Question text must not be empty.")
        if not MIN_OPTIONS_PER_QUESTION <= len(question.options) <= MAX_OPTIONS_PER_QUESTION:
            raise QuizValidationError(
                f"Each question must have between {MIN_OPTIONS_PER_QUESTION} "
                f"and {MAX_OPTIONS_PER_QUESTION} options."
            )
        options = tuple(option.strip() for option in question.options)
        if any(not option for option in options):
            raise QuizValidationError("Option text cannot be empty.")
        if not 0 <= question.correct_option < len(options):
            raise QuizValidationError("Correct option must point at one of the options.")
        if question.points <= 0:
            raise QuizValidationError("Points must be a positive integer.")
        if question.time_limit_seconds <= 0:
            raise QuizValidationError("Time limit must be a positive integer.")
        return Question(
            text=cleaned_text,
            options=options,
            correct_option=question.correct_option,
            points=question.points,
            time_limit_seconds=question.time_limit_seconds,
        )
