from __future__ import annotations

import pytest

from quizzardo.core.errors import QuizImportError
from quizzardo.core.quiz_exporter import save_questions_to_file, serialize_questions
from quizzardo.core.quiz_importer import load_questions_from_file, parse_quiz_text

SAMPLE = """
Q: What is $30^o$ in radians?
A: \\frac{\\pi}{2}
B: \\frac{\\pi}{6}
C: \\frac{\\pi}{4}
CORRECT: b
POINTS: 20
TIMELIMIT: 15

---

Q: Pick the prime.
Second line of the prompt.
A: 4
B: 7
CORRECT: B
"""


def test_parses_blocks_with_defaults():
    questions = parse_quiz_text(SAMPLE, default_time_limit=45)

    assert len(questions) == 2
    first, second = questions
    assert first.options == ("\\frac{\\pi}{2}", "\\frac{\\pi}{6}", "\\frac{\\pi}{4}")
    assert first.correct_option == 1
    assert (first.points, first.time_limit_seconds) == (20, 15)
    assert second.text == "Pick the prime.\nSecond line of the prompt."
    assert (second.points, second.time_limit_seconds) == (10, 45)


@pytest.mark.parametrize(
    "text, message",
    [
        ("", "did not contain any questions"),
        ("Q: x\nA: 1\nB: 2", "CORRECT is required"),
        ("Q: x\nA: 1\nC: 2\nCORRECT: A", "consecutively"),
        ("Q: x\nA: 1\nCORRECT: A", "at least two options"),
        ("Q: x\nA: 1\nB: 2\nCORRECT: D", "CORRECT must be one of A, B"),
        ("Q: x\nA: 1\nB: 2\nCORRECT: A\nPOINTS: zero", "POINTS must be an integer"),
        ("Q: x\nA: 1\nB: 2\nCORRECT: A\nTIMELIMIT: -3", "TIMELIMIT must be a positive"),
        ("stray text", "outside of a known section"),
    ],
)
def test_rejects_malformed_blocks(text, message):
    with pytest.raises(QuizImportError, match=message):
        parse_quiz_text(text)


def test_export_can_be_imported_again(tmp_path):
    questions = parse_quiz_text(SAMPLE)
    target = tmp_path / "nested" / "quiz.txt"

    save_questions_to_file(target, questions)

    assert load_questions_from_file(target) == questions
    assert serialize_questions(questions).count("---") == 1


def test_export_rejects_empty_quiz():
    with pytest.raises(ValueError):
        serialize_questions([])
