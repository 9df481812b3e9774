"""FastAPI server exposing player and admin endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
import uvicorn

from quizzardo.config.settings import PlatformSettings
from quizzardo.constants.about import APP_ABOUT_TEXT, APP_NAME, APP_VERSION
from quizzardo.constants.network_constants import (
    ADMIN_HEADER,
    DEFAULT_HOST,
    DEFAULT_PORT,
    USER_ID_HEADER,
    USER_NAME_HEADER,
)
from quizzardo.constants.quiz_constants import DEFAULT_POINTS_PER_QUESTION, DEFAULT_TIME_LIMIT_SECONDS
from quizzardo.core.errors import (
    AlreadyAttemptedError,
    PaymentRequiredError,
    QuizConfigurationError,
    QuizError,
    QuizNotFoundError,
    QuizNotStartedError,
    QuizValidationError,
    SessionStateError,
)
from quizzardo.core.markdown_math_renderer import renderer
from quizzardo.core.models import Identity, LeaderboardEntry, Question, Quiz, QuizType, UserProfile
from quizzardo.core.quiz_manager import QuizDraft, QuizManager
from quizzardo.core.services.integrity_monitor import IntegritySignal
from quizzardo.core.services.quiz_session import SessionSnapshot

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}


class QuestionPayload(BaseModel):
    text: str
    options: list[str]
    correct_option: int
    points: int = DEFAULT_POINTS_PER_QUESTION
    time_limit_seconds: int = DEFAULT_TIME_LIMIT_SECONDS


class QuizPayload(BaseModel):
    """Admin payload for creating or replacing a quiz."""

    title: str
    type: QuizType = QuizType.FREE
    description: str = ""
    start_time: datetime
    duration_minutes: int
    entry_fee: float = 0.0
    prize_money: list[float] = Field(default_factory=list)
    questions: list[QuestionPayload] = Field(default_factory=list)


class JoinPayload(BaseModel):
    payment_confirmed: bool = False


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    selected_option_index: int
    question_index: int | None = None


class SignalPayload(BaseModel):
    signal: IntegritySignal


class ActivePayload(BaseModel):
    active: bool


class ImportPayload(BaseModel):
    text: str


def _to_http_error(exc: QuizError) -> HTTPException:
    if isinstance(exc, QuizNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PaymentRequiredError):
        return HTTPException(status_code=402, detail=str(exc))
    if isinstance(exc, QuizValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(
        exc,
        (AlreadyAttemptedError, QuizNotStartedError, SessionStateError, QuizConfigurationError),
    ):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.astimezone(timezone.utc).isoformat()


def _quiz_summary(quiz: Quiz) -> dict[str, object]:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "type": quiz.type.value,
        "entry_fee": quiz.entry_fee,
        "prize_money": list(quiz.prize_money),
        "total_prize": quiz.total_prize,
        "start_time": _iso(quiz.start_time),
        "duration_minutes": quiz.duration_minutes,
        "question_count": len(quiz.questions),
        "total_points": quiz.total_points,
        "participant_count": len(quiz.participants),
        "is_active": quiz.is_active,
    }


def _quiz_admin_view(quiz: Quiz) -> dict[str, object]:
    payload = _quiz_summary(quiz)
    payload["created_by"] = quiz.created_by
    payload["prizes_settled"] = quiz.prizes_settled
    payload["questions"] = [
        {
            "text": q.text,
            "options": list(q.options),
            "correct_option": q.correct_option,
            "points": q.points,
            "time_limit_seconds": q.time_limit_seconds,
        }
        for q in quiz.questions
    ]
    return payload


def _session_payload(snapshot: SessionSnapshot) -> dict[str, object]:
    feedback = None
    if snapshot.feedback is not None:
        feedback = {
            "correct": snapshot.feedback.correct,
            "correct_option_index": snapshot.feedback.correct_display_index,
            "explanation": snapshot.feedback.explanation,
        }
    countdown = None
    if snapshot.countdown is not None:
        countdown = {
            "days": snapshot.countdown.days,
            "hours": snapshot.countdown.hours,
            "minutes": snapshot.countdown.minutes,
            "seconds": snapshot.countdown.seconds,
        }
    result = None
    if snapshot.result is not None:
        result = {
            "score": snapshot.result.score,
            "time_spent": snapshot.result.time_spent,
            "disqualified": snapshot.result.disqualified,
            "completed_at": _iso(snapshot.result.completed_at),
        }
    question_html = None
    if snapshot.question_text is not None:
        question_html = renderer.render_fragment(snapshot.question_text)
    return {
        "quiz_id": snapshot.quiz_id,
        "status": snapshot.status.value,
        "question_index": snapshot.question_index,
        "question_count": snapshot.question_count,
        "question_html": question_html,
        "options": [renderer.render_inline(option) for option in snapshot.options],
        "time_left": snapshot.time_left,
        "score": snapshot.score,
        "total_points": snapshot.total_points,
        "answers": snapshot.answers,
        "violation_count": snapshot.violation_count,
        "violation_limit": snapshot.violation_limit,
        "disqualified": snapshot.disqualified,
        "selected_option_index": snapshot.selected_display_index,
        "feedback": feedback,
        "countdown": countdown,
        "result": result,
        "error": snapshot.error_message,
    }


def _leaderboard_payload(entries: list[LeaderboardEntry]) -> list[dict[str, object]]:
    return [
        {
            "rank": entry.rank,
            "user_id": entry.user_id,
            "user_name": entry.user_name,
            "score": entry.score,
            "time_spent": entry.time_spent,
            "prize": entry.prize,
            "disqualified": entry.disqualified,
        }
        for entry in entries
    ]


def _profile_payload(profile: UserProfile) -> dict[str, object]:
    return {
        "user_id": profile.user_id,
        "name": profile.name,
        "is_admin": profile.is_admin,
        "quizzes_played": profile.quizzes_played,
        "total_winnings": profile.total_winnings,
    }


def _draft_from_payload(payload: QuizPayload) -> QuizDraft:
    return QuizDraft(
        title=payload.title,
        type=payload.type,
        start_time=payload.start_time,
        duration_minutes=payload.duration_minutes,
        description=payload.description,
        entry_fee=payload.entry_fee,
        prize_money=list(payload.prize_money),
        questions=[
            Question(
                text=q.text,
                options=tuple(q.options),
                correct_option=q.correct_option,
                points=q.points,
                time_limit_seconds=q.time_limit_seconds,
            )
            for q in payload.questions
        ],
    )


def get_identity(
    user_id: str | None = Header(default=None, alias=USER_ID_HEADER),
    user_name: str | None = Header(default=None, alias=USER_NAME_HEADER),
    admin: str | None = Header(default=None, alias=ADMIN_HEADER),
) -> Identity:
    """Identity forwarded by the authenticating proxy in front of this service."""
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity.")
    user_id = user_id.strip()
    display_name = (user_name or "").strip() or user_id
    return Identity(
        user_id=user_id,
        display_name=display_name,
        is_admin=(admin or "").strip().lower() in _TRUTHY,
    )


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return identity


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def create_api_app(quiz_manager: QuizManager) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        quiz_manager.shutdown()

    app = FastAPI(
        title=f"{APP_NAME} API",
        description=APP_ABOUT_TEXT,
        version=APP_VERSION,
        lifespan=lifespan,
    )
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    # --- Player endpoints ---

    @app.get("/me")
    def get_profile(
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _profile_payload(manager.register_user(identity))

    @app.get("/quizzes")
    def list_quizzes(manager: QuizManager = Depends(quiz_manager_dep)) -> list[dict[str, object]]:
        return [_quiz_summary(quiz) for quiz in manager.list_quizzes()]

    @app.get("/quizzes/{quiz_id}")
    def get_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            quiz = manager.get_quiz(quiz_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        if not quiz.is_active:
            raise HTTPException(status_code=404, detail=f"Quiz '{quiz_id}' is not available.")
        return _quiz_summary(quiz)

    @app.post("/quizzes/{quiz_id}/join", status_code=201)
    def join_quiz(
        quiz_id: str,
        payload: JoinPayload,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            quiz = manager.join_quiz(quiz_id, identity, payment_confirmed=payload.payment_confirmed)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return {"quiz_id": quiz.id, "user_id": identity.user_id, "joined": True}

    @app.post("/quizzes/{quiz_id}/session", status_code=201)
    def open_session(
        quiz_id: str,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            session = manager.open_session(quiz_id, identity)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _session_payload(session.snapshot())

    @app.post("/quizzes/{quiz_id}/session/start")
    def start_session(
        quiz_id: str,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            snapshot = manager.start_session(quiz_id, identity)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _session_payload(snapshot)

    @app.get("/quizzes/{quiz_id}/session")
    def get_session(
        quiz_id: str,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            session = manager.get_session(quiz_id, identity.user_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _session_payload(session.snapshot())

    @app.post("/quizzes/{quiz_id}/session/answer")
    def submit_answer(
        quiz_id: str,
        payload: AnswerPayload,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            session = manager.get_session(quiz_id, identity.user_id)
            feedback = session.submit_answer(payload.selected_option_index, payload.question_index)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        response = _session_payload(session.snapshot())
        response["accepted"] = feedback is not None
        return response

    @app.post("/quizzes/{quiz_id}/session/signal")
    def report_signal(
        quiz_id: str,
        payload: SignalPayload,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            session = manager.get_session(quiz_id, identity.user_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        disqualified_now = session.report_signal(payload.signal)
        response = _session_payload(session.snapshot())
        response["disqualified_now"] = disqualified_now
        return response

    @app.delete("/quizzes/{quiz_id}/session", status_code=204)
    def close_session(
        quiz_id: str,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> Response:
        manager.close_session(quiz_id, identity.user_id)
        return Response(status_code=204)

    @app.get("/quizzes/{quiz_id}/leaderboard")
    def get_leaderboard(
        quiz_id: str,
        identity: Identity = Depends(get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        if not manager.get_settings().show_leaderboard and not identity.is_admin:
            raise HTTPException(status_code=403, detail="Leaderboard is hidden.")
        try:
            entries = manager.get_leaderboard(quiz_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _leaderboard_payload(entries)

    # --- Admin endpoints ---

    @app.get("/admin/quizzes")
    def admin_list_quizzes(
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        return [_quiz_admin_view(quiz) for quiz in manager.list_quizzes(include_inactive=True)]

    @app.post("/admin/quizzes", status_code=201)
    def admin_create_quiz(
        payload: QuizPayload,
        admin: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            quiz = manager.create_quiz(_draft_from_payload(payload), created_by=admin.user_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _quiz_admin_view(quiz)

    @app.put("/admin/quizzes/{quiz_id}")
    def admin_update_quiz(
        quiz_id: str,
        payload: QuizPayload,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            quiz = manager.update_quiz(quiz_id, _draft_from_payload(payload))
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _quiz_admin_view(quiz)

    @app.delete("/admin/quizzes/{quiz_id}", status_code=204)
    def admin_delete_quiz(
        quiz_id: str,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> Response:
        try:
            manager.delete_quiz(quiz_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return Response(status_code=204)

    @app.post("/admin/quizzes/{quiz_id}/active")
    def admin_set_active(
        quiz_id: str,
        payload: ActivePayload,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            quiz = manager.set_quiz_active(quiz_id, payload.active)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _quiz_admin_view(quiz)

    @app.post("/admin/quizzes/{quiz_id}/import")
    def admin_import_questions(
        quiz_id: str,
        payload: ImportPayload,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            quiz = manager.import_questions(quiz_id, payload.text)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _quiz_admin_view(quiz)

    @app.get("/admin/quizzes/{quiz_id}/export", response_class=PlainTextResponse)
    def admin_export_questions(
        quiz_id: str,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> str:
        try:
            return manager.export_questions(quiz_id)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except QuizError as exc:
            raise _to_http_error(exc) from exc

    @app.post("/admin/quizzes/{quiz_id}/settle")
    def admin_settle_prizes(
        quiz_id: str,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        try:
            entries = manager.settle_prizes(quiz_id)
        except QuizError as exc:
            raise _to_http_error(exc) from exc
        return _leaderboard_payload(entries)

    @app.get("/admin/users")
    def admin_list_users(
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        return [_profile_payload(profile) for profile in manager.list_users()]

    @app.get("/admin/settings")
    def admin_get_settings(
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return manager.get_settings().model_dump()

    @app.put("/admin/settings")
    def admin_update_settings(
        payload: PlatformSettings,
        _: Identity = Depends(require_admin),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return manager.update_settings(payload).model_dump()

    return app


def run_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API in the foreground until interrupted."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    logger.info("Serving %s API on http://%s:%d/", APP_NAME, host, port)
    server.run()
