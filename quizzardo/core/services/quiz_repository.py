"""Storage boundary for quizzes, results, users and platform settings."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock

from quizzardo.config.settings import PlatformSettings
from quizzardo.core.errors import DuplicateResultError, QuizNotFoundError
from quizzardo.core.models import Quiz, Result, UserProfile


class QuizRepository(ABC):
    """Operations the platform needs from its document store."""

    @abstractmethod
    def get_quiz(self, quiz_id: str) -> Quiz:
        """Return the quiz or raise ``QuizNotFoundError``."""

    @abstractmethod
    def list_quizzes(self) -> list[Quiz]: ...

    @abstractmethod
    def add_quiz(self, quiz: Quiz) -> None: ...

    @abstractmethod
    def update_quiz(self, quiz: Quiz) -> None: ...

    @abstractmethod
    def delete_quiz(self, quiz_id: str) -> None: ...

    @abstractmethod
    def add_participant(self, quiz_id: str, user_id: str) -> None: ...

    @abstractmethod
    def list_results_for_quiz(self, quiz_id: str) -> list[Result]: ...

    @abstractmethod
    def get_result(self, quiz_id: str, user_id: str) -> Result | None: ...

    @abstractmethod
    def save_result(self, result: Result, overwrite: bool = False) -> None:
        """Store a result; raise ``DuplicateResultError`` if one exists and not ``overwrite``."""

    @abstractmethod
    def get_user(self, user_id: str) -> UserProfile | None: ...

    @abstractmethod
    def save_user(self, profile: UserProfile) -> None: ...

    @abstractmethod
    def list_users(self) -> list[UserProfile]: ...

    @abstractmethod
    def get_settings(self) -> PlatformSettings: ...

    @abstractmethod
    def save_settings(self, settings: PlatformSettings) -> None: ...

    def get_user_names(self, user_ids: list[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        for user_id in user_ids:
            profile = self.get_user(user_id)
            if profile is not None:
                names[user_id] = profile.name
        return names


class InMemoryQuizRepository(QuizRepository):
    """Process-local store guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._quizzes: dict[str, Quiz] = {}
        self._results: dict[str, dict[str, Result]] = {}
        self._users: dict[str, UserProfile] = {}
        self._settings = PlatformSettings()

    def get_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
            if quiz is None:
                raise QuizNotFoundError(f"Quiz '{quiz_id}' not found.")
            return quiz

    def list_quizzes(self) -> list[Quiz]:
        with self._lock:
            return sorted(self._quizzes.values(), key=lambda q: q.start_time)

    def add_quiz(self, quiz: Quiz) -> None:
        with self._lock:
            if quiz.id in self._quizzes:
                raise ValueError(f"Quiz '{quiz.id}' already exists.")
            self._quizzes[quiz.id] = quiz

    def update_quiz(self, quiz: Quiz) -> None:
        with self._lock:
            if quiz.id not in self._quizzes:
                raise QuizNotFoundError(f"Quiz '{quiz.id}' not found.")
            self._quizzes[quiz.id] = quiz

    def delete_quiz(self, quiz_id: str) -> None:
        with self._lock:
            if self._quizzes.pop(quiz_id, None) is None:
                raise QuizNotFoundError(f"Quiz '{quiz_id}' not found.")
            self._results.pop(quiz_id, None)

    def add_participant(self, quiz_id: str, user_id: str) -> None:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
            if quiz is None:
                raise QuizNotFoundError(f"Quiz '{quiz_id}' not found.")
            quiz.participants.add(user_id)

    def list_results_for_quiz(self, quiz_id: str) -> list[Result]:
        with self._lock:
            return list(self._results.get(quiz_id, {}).values())

    def get_result(self, quiz_id: str, user_id: str) -> Result | None:
        with self._lock:
            return self._results.get(quiz_id, {}).get(user_id)

    def save_result(self, result: Result, overwrite: bool = False) -> None:
        with self._lock:
            if result.quiz_id not in self._quizzes:
                raise QuizNotFoundError(f"Quiz '{result.quiz_id}' not found.")
            quiz_results = self._results.setdefault(result.quiz_id, {})
            if result.user_id in quiz_results and not overwrite:
                raise DuplicateResultError(
                    f"Result for user '{result.user_id}' on quiz '{result.quiz_id}' already recorded."
                )
            quiz_results[result.user_id] = result

    def get_user(self, user_id: str) -> UserProfile | None:
        with self._lock:
            return self._users.get(user_id)

    def save_user(self, profile: UserProfile) -> None:
        with self._lock:
            self._users[profile.user_id] = profile

    def list_users(self) -> list[UserProfile]:
        with self._lock:
            return sorted(self._users.values(), key=lambda u: u.name.lower())

    def get_settings(self) -> PlatformSettings:
        with self._lock:
            return self._settings.model_copy()

    def save_settings(self, settings: PlatformSettings) -> None:
        with self._lock:
            self._settings = settings.model_copy()
