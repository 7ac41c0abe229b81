"""
services/exam_service.py

Grading and result analysis.
Pure functions: no I/O and no global state.
"""

import math
from collections import defaultdict
from typing import Dict, List, Mapping, Optional

from scout_exam.models.question_model import Question

from config import PASSING_THRESHOLD


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def is_correct(question: Question, answer) -> bool:
    """
    Strict comparison: both type and value must match, so True never
    matches option index 1 and 0 never matches False.
    """
    if answer is None:
        return False
    return type(answer) is type(question.correct_answer) and answer == question.correct_answer


def count_correct(questions: List[Question], user_answers: Mapping[str, object]) -> int:
    """Number of questions whose stored answer matches. Unanswered counts as wrong."""
    return sum(1 for q in questions if is_correct(q, user_answers.get(q.id)))


def calculate_score(
    questions: List[Question],
    user_answers: Mapping[str, object],
) -> int:
    """
    Percentage score, rounded half-up to an integer.

    Args:
        questions:    questions of the attempt, in exam order.
        user_answers: answer sheet. {question.id: option index | bool}

    Returns:
        0 ~ 100. An empty question list yields 0; callers must refuse to
        start such a session before it gets here.
    """
    if not questions:
        return 0
    return round_half_up(count_correct(questions, user_answers) / len(questions) * 100)


def get_incorrect_questions(
    questions: List[Question],
    user_answers: Mapping[str, object],
) -> List[Question]:
    """Questions answered wrongly or left unanswered, in exam order."""
    return [q for q in questions if not is_correct(q, user_answers.get(q.id))]


def grade_answers(
    questions: List[Question],
    user_answers: Mapping[str, object],
) -> List[Dict[str, object]]:
    """Per-question breakdown for the result detail view."""
    return [
        {
            "question_id": q.id,
            "user_answer": user_answers.get(q.id),
            "correct_answer": q.correct_answer,
            "correct": is_correct(q, user_answers.get(q.id)),
        }
        for q in questions
    ]


def calculate_category_scores(
    questions: List[Question],
    user_answers: Mapping[str, object],
) -> List[Dict[str, object]]:
    """
    Scores grouped by question category.

    Returns:
        [{"category": str, "total": int, "correct": int,
          "incorrect": int, "unanswered": int, "score": int}, ...]
        sorted by category name.
    """
    buckets: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "incorrect": 0, "unanswered": 0}
    )

    for q in questions:
        b = buckets[q.category or "general"]
        b["total"] += 1
        ans = user_answers.get(q.id)
        if ans is None:
            b["unanswered"] += 1
        elif is_correct(q, ans):
            b["correct"] += 1
        else:
            b["incorrect"] += 1

    return [
        {"category": cat, **b, "score": round_half_up(b["correct"] / b["total"] * 100)}
        for cat, b in sorted(buckets.items())
    ]


def is_passed(score: float, pass_score: Optional[float] = None) -> bool:
    """score >= pass_score (defaults to config.PASSING_THRESHOLD)."""
    if pass_score is None:
        pass_score = PASSING_THRESHOLD
    return score >= pass_score
