"""
Tests for grading functions in services/exam_service.py.

Covers:
- Percentage formula and half-up rounding
- Strict type-and-value comparison of answers
- Per-category breakdown and pass threshold
"""

import pytest

from conftest import make_questions
from scout_exam.models.question_model import Question
from scout_exam.services.exam_service import (
    calculate_category_scores,
    calculate_score,
    count_correct,
    get_incorrect_questions,
    grade_answers,
    is_correct,
    is_passed,
    round_half_up,
)


def _tf(qid: str, answer: bool = True, category=None) -> Question:
    return Question(id=qid, question=qid, type="truefalse", correct_answer=answer, category=category)


def _mcq(qid: str, answer: int = 1, category=None) -> Question:
    return Question(id=qid, question=qid, type="mcq", options=["A", "B", "C"],
                    correct_answer=answer, category=category)


class TestScoreFormula:
    """Test the percentage score."""

    def test_all_correct_is_100(self):
        """Test every answer right gives 100."""
        qs = make_questions(4)
        answers = {"q0": 1, "q1": True, "q2": 1, "q3": True}
        assert calculate_score(qs, answers) == 100

    def test_unanswered_counts_as_wrong(self):
        """Test an empty answer sheet scores zero."""
        assert calculate_score(make_questions(4), {}) == 0

    def test_three_of_five_is_60(self):
        """Test 3 correct out of 5 gives exactly 60."""
        qs = make_questions(5)
        answers = {"q0": 1, "q1": True, "q2": 1, "q3": False, "q4": 0}
        assert calculate_score(qs, answers) == 60
        assert is_passed(60)

    def test_rounds_half_up(self):
        """Test 1/8 = 12.5% rounds to 13, not banker's 12."""
        qs = [_tf(f"t{i}") for i in range(8)]
        assert calculate_score(qs, {"t0": True}) == 13

    def test_two_of_three_rounds_to_67(self):
        """Test 66.67% rounds to 67."""
        qs = [_tf("a"), _tf("b"), _tf("c")]
        assert calculate_score(qs, {"a": True, "b": True}) == 67

    def test_empty_question_list_scores_zero(self):
        """Test an empty exam never divides by zero."""
        assert calculate_score([], {}) == 0

    def test_round_half_up(self):
        """Test the rounding helper itself."""
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestStrictEquality:
    """Test that type and value must both match."""

    def test_true_does_not_match_index_one(self):
        """Test a boolean answer never matches option index 1."""
        assert is_correct(_mcq("m", answer=1), True) is False

    def test_zero_does_not_match_false(self):
        """Test index 0 never matches a False truefalse answer."""
        assert is_correct(_tf("t", answer=False), 0) is False

    def test_none_is_wrong(self):
        """Test a missing answer is wrong."""
        assert is_correct(_tf("t"), None) is False

    def test_matching_values(self):
        """Test exact matches are right."""
        assert is_correct(_mcq("m", answer=2), 2)
        assert is_correct(_tf("t", answer=False), False)

    def test_mixed_types_score(self):
        """Test a sheet answered with the wrong types scores zero."""
        qs = [_mcq("m", answer=1), _tf("t", answer=False)]
        assert count_correct(qs, {"m": True, "t": 0}) == 0


class TestAnalysis:
    """Test incorrect list, breakdown and pass/fail."""

    def test_incorrect_questions_keep_order(self):
        """Test wrong and unanswered questions come back in exam order."""
        qs = make_questions(4)
        wrong = get_incorrect_questions(qs, {"q0": 1, "q1": False})
        assert [q.id for q in wrong] == ["q1", "q2", "q3"]

    def test_grade_answers(self):
        """Test per-question breakdown."""
        qs = make_questions(2)
        rows = grade_answers(qs, {"q0": 1})
        assert rows[0] == {"question_id": "q0", "user_answer": 1, "correct_answer": 1, "correct": True}
        assert rows[1]["user_answer"] is None
        assert rows[1]["correct"] is False

    def test_category_scores(self):
        """Test grouping by category, uncategorised under 'general'."""
        qs = [_tf("a", category="x"), _tf("b", category="x"), _tf("c")]
        rows = calculate_category_scores(qs, {"a": True, "b": False})
        assert rows == [
            {"category": "general", "total": 1, "correct": 0, "incorrect": 0, "unanswered": 1, "score": 0},
            {"category": "x", "total": 2, "correct": 1, "incorrect": 1, "unanswered": 0, "score": 50},
        ]

    @pytest.mark.parametrize("score,expected", [(59, False), (60, True), (100, True)])
    def test_is_passed_default_threshold(self, score, expected):
        """Test the 60% pass mark."""
        assert is_passed(score) is expected

    def test_is_passed_custom_threshold(self):
        """Test an explicit pass mark."""
        assert is_passed(70, pass_score=80) is False
