"""Utilities for importing quiz questions from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text (supports markdown + LaTeX). Additional lines until the
       next marker are treated as part of the question.
    A: First option text
    B: Second option text
    ...          (two to six options, lettered A-F in order)
    CORRECT: letter of the correct option
    POINTS: positive integer   (optional, defaults to 10)
    TIMELIMIT: seconds         (optional, defaults to the platform setting)

Example:

    Q: What is $2 + 2$?
    A: 3
    B: 4
    C: 5
    D: 22
    CORRECT: B
    POINTS: 10
    TIMELIMIT: 30
"""

from __future__ import annotations

from pathlib import Path

from quizzardo.constants.quiz_constants import (
    DEFAULT_POINTS_PER_QUESTION,
    DEFAULT_TIME_LIMIT_SECONDS,
    MAX_OPTIONS_PER_QUESTION,
    MIN_OPTIONS_PER_QUESTION,
)
from quizzardo.core.errors import QuizImportError
from quizzardo.core.models import Question

_OPTION_ORDER = ["A", "B", "C", "D", "E", "F"][:MAX_OPTIONS_PER_QUESTION]


def load_questions_from_file(
    file_path: Path, default_time_limit: int = DEFAULT_TIME_LIMIT_SECONDS
) -> list[Question]:
    text = file_path.read_text(encoding="utf-8")
    return parse_quiz_text(text, default_time_limit=default_time_limit)


def parse_quiz_text(
    text: str, default_time_limit: int = DEFAULT_TIME_LIMIT_SECONDS
) -> list[Question]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line encountered after content - finalize current block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    questions = [_parse_block(block, default_time_limit) for block in blocks if block]
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")
    return questions


def _parse_positive_int(line: str, label: str) -> int:
    raw_value = line.split(":", 1)[1].strip()
    if not raw_value:
        raise QuizImportError(f"{label} must include an integer value.")
    try:
        parsed_value = int(raw_value)
    except ValueError as exc:
        raise QuizImportError(f"{label} must be an integer.") from exc
    if parsed_value <= 0:
        raise QuizImportError(f"{label} must be a positive integer.")
    return parsed_value


def _parse_block(block: str, default_time_limit: int) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    correct_letter: str | None = None
    points = DEFAULT_POINTS_PER_QUESTION
    time_limit_seconds = default_time_limit
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if upper.startswith("POINTS:"):
            points = _parse_positive_int(line, "POINTS")
            current_section = None
            continue

        if upper.startswith("TIMELIMIT:"):
            time_limit_seconds = _parse_positive_int(line, "TIMELIMIT")
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_ORDER and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section in _OPTION_ORDER:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuizImportError(
                f"Encountered text outside of a known section: '{line}'."
            )

    if not question_lines:
        raise QuizImportError("Question text missing (Q: ...)")

    expected_letters = _OPTION_ORDER[: len(options)]
    if sorted(options) != expected_letters:
        raise QuizImportError("Options must be lettered consecutively starting at A.")
    if len(options) < MIN_OPTIONS_PER_QUESTION:
        raise QuizImportError("Each question must define at least two options.")

    option_list = tuple(options[letter].strip() for letter in expected_letters)
    if any(not opt for opt in option_list):
        raise QuizImportError("Option text cannot be empty.")

    if correct_letter is None:
        raise QuizImportError("CORRECT is required for every question.")
    if correct_letter not in expected_letters:
        raise QuizImportError(
            f"CORRECT must be one of {', '.join(expected_letters)}."
        )

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuizImportError("Question text cannot be empty.")

    return Question(
        text=question_text,
        options=option_list,
        correct_option=expected_letters.index(correct_letter),
        points=points,
        time_limit_seconds=time_limit_seconds,
    )
