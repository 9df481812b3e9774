"""Running score and answer sheet for a single quiz attempt."""

from __future__ import annotations

from quizzardo.core.models import UNANSWERED, Question


class ScoringAccumulator:
    """Tallies points for correct answers, one answer per question."""

    def __init__(self) -> None:
        self._score: int = 0
        self._answers: list[int] = []
        self._answered: set[int] = set()

    def submit(self, question_index: int, question: Question, selected_index: int) -> bool:
        """Record an answer. Returns False when the question already has one."""
        if question_index in self._answered:
            return False
        self._answered.add(question_index)
        self._answers.append(selected_index)
        if selected_index == question.correct_option:
            self._score += question.points
        return True

    def record_unanswered(self, question_index: int) -> bool:
        if question_index in self._answered:
            return False
        self._answered.add(question_index)
        self._answers.append(UNANSWERED)
        return True

    def has_answered(self, question_index: int) -> bool:
        return question_index in self._answered

    def force_zero(self) -> None:
        self._score = 0

    def get_score(self) -> int:
        return self._score

    def get_answers(self) -> list[int]:
        return list(self._answers)
