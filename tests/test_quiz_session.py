from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
from conftest import T0, make_question, make_quiz

from quizzardo.config.settings import PlatformSettings
from quizzardo.core.errors import (
    PaymentRequiredError,
    QuizConfigurationError,
    QuizNotFoundError,
    QuizNotStartedError,
    RepositoryError,
    SessionStateError,
)
from quizzardo.core.models import UNANSWERED, QuizType, SessionStatus
from quizzardo.core.services.integrity_monitor import IntegritySignal
from quizzardo.core.services.quiz_repository import InMemoryQuizRepository
from quizzardo.core.services.quiz_session import QuizSession


def _session(quiz, player, repository, clock, scheduler, **kwargs) -> QuizSession:
    repository.add_quiz(quiz)
    return QuizSession(quiz, player, repository, clock, scheduler, **kwargs)


def test_answer_then_expire_scenario(player, repository, clock, scheduler):
    quiz = make_quiz(questions=[make_question(0, 10, 30), make_question(0, 10, 30)])
    session = _session(quiz, player, repository, clock, scheduler)

    session.start()
    scheduler.advance(25)
    assert session.get_time_left() == 5

    feedback = session.submit_answer(0)
    assert feedback is not None and feedback.correct
    assert session.get_score() == 10
    assert session.get_answers() == [0]
    assert session.get_question_index() == 1
    assert session.get_time_left() == 30

    scheduler.advance(30)

    assert session.get_status() is SessionStatus.ENDED
    assert session.get_score() == 10
    assert session.get_answers() == [0, UNANSWERED]
    result = session.get_result()
    assert result is not None
    assert result.score == 10
    assert not result.disqualified
    assert result.time_spent == 55
    assert repository.get_result(quiz.id, player.user_id) == result
    assert [e.user_id for e in session.get_leaderboard()] == [player.user_id]
    assert scheduler.pending() == 0


def test_three_visibility_losses_disqualify(player, repository, clock, scheduler):
    quiz = make_quiz()
    session = _session(quiz, player, repository, clock, scheduler)
    session.start()
    session.submit_answer(0)
    assert session.get_score() == 10

    assert session.report_signal(IntegritySignal.VISIBILITY_LOST) is False
    assert session.report_signal(IntegritySignal.VISIBILITY_LOST) is False
    assert session.report_signal(IntegritySignal.VISIBILITY_LOST) is True

    assert session.get_status() is SessionStatus.ENDED
    assert session.is_disqualified()
    assert session.get_score() == 0
    assert repository.get_result(quiz.id, player.user_id).disqualified

    # Nothing mutates a finished session.
    assert session.submit_answer(0) is None
    scheduler.advance(120)
    assert session.get_score() == 0
    assert session.get_answers() == [0]


def test_blocked_shortcuts_do_not_count(player, repository, clock, scheduler):
    session = _session(make_quiz(), player, repository, clock, scheduler)
    session.start()
    for _ in range(4):
        session.report_signal(IntegritySignal.CONTEXT_MENU)
        session.report_signal(IntegritySignal.SHORTCUT_KEY)
    assert session.get_status() is SessionStatus.STARTED
    assert session.get_violation_count() == 0


def test_signals_before_start_are_ignored(player, repository, clock, scheduler):
    session = _session(make_quiz(), player, repository, clock, scheduler)
    for _ in range(3):
        assert session.report_signal(IntegritySignal.FULLSCREEN_EXITED) is False
    assert session.get_status() is SessionStatus.WAITING
    assert session.get_violation_count() == 0


def test_expiry_handler_is_idempotent(player, repository, clock, scheduler):
    quiz = make_quiz(questions=[make_question(), make_question(), make_question()])
    session = _session(quiz, player, repository, clock, scheduler)
    session.start()

    session.expire_question(0)
    session.expire_question(0)

    assert session.get_question_index() == 1
    assert session.get_answers() == [UNANSWERED]


def test_question_index_advances_one_at_a_time(player, repository, clock, scheduler):
    quiz = make_quiz(questions=[make_question(time_limit_seconds=5) for _ in range(4)])
    session = _session(quiz, player, repository, clock, scheduler)
    session.start()

    seen = [session.get_question_index()]
    while session.get_status() is SessionStatus.STARTED:
        scheduler.advance(5)
        if session.get_status() is SessionStatus.STARTED:
            seen.append(session.get_question_index())

    assert seen == [0, 1, 2, 3]
    assert 0 <= session.get_score() <= quiz.total_points


def test_stale_answer_for_previous_question_is_ignored(player, repository, clock, scheduler):
    session = _session(make_quiz(), player, repository, clock, scheduler)
    session.start()
    session.submit_answer(0, question_index=0)

    assert session.submit_answer(0, question_index=0) is None
    assert session.get_answers() == [0]
    assert session.get_question_index() == 1


def test_feedback_pause_delays_advance(player, repository, clock, scheduler):
    settings = PlatformSettings(answer_feedback_seconds=2)
    session = _session(make_quiz(), player, repository, clock, scheduler, settings=settings)
    session.start()

    feedback = session.submit_answer(2)
    assert feedback is not None and not feedback.correct
    assert feedback.explanation == "Incorrect. The correct answer was A"
    assert session.submit_answer(0) is None
    assert session.get_question_index() == 0

    scheduler.advance(2)
    assert session.get_question_index() == 1
    assert session.snapshot().feedback is None


def test_shuffled_options_map_back_to_original_index(player, repository, clock, scheduler):
    settings = PlatformSettings(shuffle_options=True)
    quiz = make_quiz(questions=[make_question(correct_option=0)])
    session = _session(quiz, player, repository, clock, scheduler, settings=settings, shuffle_seed=7)
    session.start()

    display_index = session.get_display_options().index("4")
    feedback = session.submit_answer(display_index)

    assert feedback is not None and feedback.correct
    assert feedback.correct_display_index == display_index
    assert session.get_answers() == [0]
    assert session.get_score() == 10


def test_cannot_start_before_start_time(player, repository, clock, scheduler):
    quiz = make_quiz(start_time=T0 + timedelta(hours=1, minutes=2, seconds=3))
    session = _session(quiz, player, repository, clock, scheduler)

    with pytest.raises(QuizNotStartedError):
        session.start()
    countdown = session.snapshot().countdown
    assert (countdown.hours, countdown.minutes, countdown.seconds) == (1, 2, 3)

    clock.advance(3723)
    session.start()
    assert session.get_status() is SessionStatus.STARTED
    with pytest.raises(SessionStateError):
        session.start()


def test_paid_quiz_requires_participation(player, repository, clock, scheduler):
    quiz = make_quiz(quiz_type=QuizType.PAID)
    session = _session(quiz, player, repository, clock, scheduler)

    with pytest.raises(PaymentRequiredError):
        session.start()

    repository.add_participant(quiz.id, player.user_id)
    session.start()
    assert session.get_status() is SessionStatus.STARTED


def test_quiz_without_questions_never_starts(player, repository, clock, scheduler):
    with pytest.raises(QuizConfigurationError):
        QuizSession(make_quiz(questions=[]), player, repository, clock, scheduler)


def test_submit_before_start_is_rejected(player, repository, clock, scheduler):
    session = _session(make_quiz(), player, repository, clock, scheduler)
    with pytest.raises(SessionStateError):
        session.submit_answer(0)


def test_out_of_range_option_is_rejected(player, repository, clock, scheduler):
    session = _session(make_quiz(), player, repository, clock, scheduler)
    session.start()
    with pytest.raises(ValueError):
        session.submit_answer(9)
    assert session.get_answers() == []


class _FailingRepository(InMemoryQuizRepository):
    def save_result(self, result, overwrite=False):
        raise RepositoryError("backend unavailable")


def test_save_failure_is_reported_but_session_ends(player, clock, scheduler):
    repository = _FailingRepository()
    saved = []
    session = _session(
        make_quiz(questions=[make_question()]),
        player,
        repository,
        clock,
        scheduler,
        on_result_saved=saved.append,
    )
    session.start()
    session.submit_answer(0)

    assert session.get_status() is SessionStatus.ENDED
    assert session.get_result().score == 10
    assert session.get_error_message() == "Error saving results"
    assert saved == []


def test_close_tears_down_pending_callbacks(player, repository, clock, scheduler):
    session = _session(make_quiz(), player, repository, clock, scheduler)
    session.start()
    session.close()

    assert scheduler.pending() == 0
    scheduler.advance(100)
    assert session.get_question_index() == 0
    assert session.report_signal(IntegritySignal.VISIBILITY_LOST) is False
    assert session.submit_answer(0) is None


def test_time_spent_is_capped_by_quiz_duration(player, repository, clock, scheduler):
    quiz = make_quiz(
        questions=[make_question(time_limit_seconds=90)], duration_minutes=1
    )
    session = _session(quiz, player, repository, clock, scheduler)
    session.start()
    scheduler.advance(90)

    assert session.get_result().time_spent == 60


def test_start_uses_the_quiz_as_currently_stored(player, repository, clock, scheduler):
    quiz = make_quiz(questions=[make_question()])
    session = _session(quiz, player, repository, clock, scheduler)

    postponed = replace(quiz, start_time=T0 + timedelta(hours=2))
    repository.update_quiz(postponed)
    with pytest.raises(QuizNotStartedError):
        session.start()
    assert session.get_status() is SessionStatus.WAITING

    repository.update_quiz(replace(quiz, questions=[make_question(), make_question(1)]))
    session.start()
    assert session.snapshot().question_count == 2


def test_start_refuses_a_hidden_quiz(player, repository, clock, scheduler):
    quiz = make_quiz()
    session = _session(quiz, player, repository, clock, scheduler)
    repository.update_quiz(replace(quiz, is_active=False))

    with pytest.raises(QuizNotFoundError):
        session.start()
    assert session.get_status() is SessionStatus.WAITING
