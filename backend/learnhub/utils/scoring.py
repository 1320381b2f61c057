"""Quiz scoring helpers."""

from typing import Iterable, Sequence


def score_answers(questions: Sequence[dict], answers: Iterable[int]) -> int:
    """Count answers that match the question's correct option by index.

    Extra answers and unanswered questions simply do not score.
    """
    return sum(
        1
        for question, given in zip(questions, answers)
        if question.get("correct_option") == given
    )
