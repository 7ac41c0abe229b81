"""
Tests for the exam attempt state machine.

Tests:
- Start, answers and navigation
- Submission from the student, the timer and the integrity monitor
- Exactly one result per attempt, frozen state after lock
- Empty question set
"""

from unittest.mock import Mock

import pytest

from conftest import ListSink, make_questions
from scout_exam.models.session_state import ExamPhase, StudentIdentity, SubmitReason
from scout_exam.services.exam_session import ExamSession


def _session(questions=None, student=None, sink=None, **kwargs):
    student = student or StudentIdentity(code="1001", name="Mina", category="x")
    sink = sink if sink is not None else ListSink()
    kwargs.setdefault("duration", 60)
    kwargs.setdefault("grace_seconds", 5)
    kwargs.setdefault("tab_switch_limit", 3)
    exam = ExamSession(make_questions() if questions is None else questions, student, sink, **kwargs)
    return exam, sink


class FlakySink(ListSink):
    """Fails the first append with a disk error."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def append(self, result):
        if self.failures:
            self.failures -= 1
            raise OSError("disk full")
        super().append(result)


class TestStart:
    """Test starting an attempt."""

    def test_start_moves_to_in_progress(self):
        """Test start() begins the countdown."""
        exam, _ = _session()
        assert exam.phase == ExamPhase.NOT_STARTED
        assert exam.start() is True
        assert exam.phase == ExamPhase.IN_PROGRESS
        assert exam.timer.running

    def test_start_twice_is_harmless(self):
        """Test a second start() does not restart the clock."""
        exam, _ = _session()
        exam.start()
        exam.scheduler.advance(5)
        assert exam.start() is True
        assert exam.timer.remaining == 55

    def test_no_questions_never_starts(self):
        """Test an empty question set: no timers, no result, not submittable."""
        exam, sink = _session(questions=[])
        assert exam.start() is False
        assert exam.phase == ExamPhase.NOT_STARTED
        assert exam.scheduler.pending_count() == 0
        assert exam.submit() is None
        exam.scheduler.advance(3600)
        assert sink.results == []

    def test_submit_before_start_returns_none(self):
        """Test nothing is produced for an attempt that never started."""
        exam, sink = _session()
        assert exam.submit() is None
        assert sink.results == []


class TestAnswersAndNavigation:
    """Test answer sheet and question navigation."""

    def test_navigation_keeps_answers(self):
        """Test answers survive moving back and forth."""
        exam, _ = _session()
        exam.start()
        exam.select_answer("q0", 2)
        exam.go_next()
        exam.select_answer("q1", False)
        exam.go_previous()

        assert exam.current_question.id == "q0"
        assert exam.state.user_answers == {"q0": 2, "q1": False}
        assert exam.is_answered("q0")
        assert exam.answered_count == 2

    def test_answer_overwrite(self):
        """Test choosing again replaces the stored answer."""
        exam, _ = _session()
        exam.start()
        exam.select_answer("q0", 2)
        exam.select_answer("q0", 1)
        assert exam.state.user_answers["q0"] == 1

    def test_navigation_is_clamped(self):
        """Test previous on the first and next on the last question stay put."""
        exam, _ = _session()
        exam.start()
        assert exam.go_previous() == 0
        assert exam.go_to(99) == 4
        assert exam.is_last_question
        assert exam.go_next() == 4

    def test_invalid_answer_rejected(self):
        """Test wrong answer types and out-of-range indexes raise."""
        exam, _ = _session()
        exam.start()
        with pytest.raises(ValueError):
            exam.select_answer("q0", True)
        with pytest.raises(ValueError):
            exam.select_answer("q0", 9)
        with pytest.raises(ValueError):
            exam.select_answer("q1", 1)

    def test_unknown_question(self):
        """Test an unknown id is refused."""
        exam, _ = _session()
        exam.start()
        assert exam.select_answer("nope", 1) is False

    def test_no_answers_before_start(self):
        """Test input is frozen until the attempt starts."""
        exam, _ = _session()
        assert exam.select_answer("q0", 1) is False


class TestSubmission:
    """Test every submission path produces one result."""

    def test_manual_submit(self):
        """Test the result is graded and handed to the sink."""
        exam, sink = _session()
        exam.start()
        exam.select_answer("q0", 1)
        exam.select_answer("q1", True)
        exam.select_answer("q2", 1)
        exam.scheduler.advance(10)

        result = exam.submit()

        assert exam.phase == ExamPhase.LOCKED
        assert sink.results == [result]
        assert result.score == 60
        assert result.correct_answers == 3
        assert result.total_questions == 5
        assert result.submit_reason == SubmitReason.MANUAL
        assert result.status == "pending"
        assert result.duration_seconds == 10

    def test_double_submit_yields_one_result(self):
        """Test a second submit returns the same result without appending."""
        exam, sink = _session()
        exam.start()
        first = exam.submit()
        second = exam.submit(SubmitReason.TIMEOUT)
        assert first is second
        assert len(sink.results) == 1

    def test_timer_expiry_submits_once(self):
        """Test reaching zero submits with reason timeout, exactly once."""
        exam, sink = _session(duration=10)
        exam.start()
        exam.scheduler.advance(100)

        assert len(sink.results) == 1
        assert sink.results[0].submit_reason == SubmitReason.TIMEOUT
        assert exam.state.is_locked
        assert exam.state.remaining_seconds == 0

    def test_three_switches_lock_after_grace(self):
        """Test 3 tab switches then 5 seconds: locked, reason integrity, count 3."""
        exam, sink = _session()
        exam.start()
        for _ in range(3):
            exam.visibility_lost()
        assert exam.phase == ExamPhase.WARNING
        assert exam.state.final_warning

        exam.scheduler.advance(5)

        assert exam.phase == ExamPhase.LOCKED
        assert len(sink.results) == 1
        result = sink.results[0]
        assert result.submit_reason == SubmitReason.INTEGRITY
        assert result.tab_switches == 3
        assert result.status == "cheated"
        assert result.lock_reason == "integrity"

    def test_answers_allowed_during_warning(self):
        """Test the student can still answer during the grace period."""
        exam, sink = _session()
        exam.start()
        for _ in range(3):
            exam.visibility_lost()
        assert exam.select_answer("q0", 1) is True
        exam.scheduler.advance(5)
        assert sink.results[0].answers == {"q0": 1}

    def test_manual_submit_cancels_auto_submit(self):
        """Test a manual submit during the grace period wins and nothing fires later."""
        exam, sink = _session()
        exam.start()
        for _ in range(3):
            exam.visibility_lost()
        exam.submit()
        exam.scheduler.advance(60)
        assert len(sink.results) == 1
        assert sink.results[0].submit_reason == SubmitReason.MANUAL

    def test_timer_and_integrity_race(self):
        """Test timer expiry inside the grace window still gives one result."""
        exam, sink = _session(duration=3)
        exam.start()
        for _ in range(3):
            exam.visibility_lost()
        exam.scheduler.advance(10)
        assert len(sink.results) == 1
        assert sink.results[0].submit_reason == SubmitReason.TIMEOUT

    def test_frozen_after_lock(self):
        """Test no answer, navigation or tab event changes a locked attempt."""
        exam, _ = _session()
        exam.start()
        exam.select_answer("q0", 1)
        exam.submit()

        assert exam.select_answer("q0", 0) is False
        assert exam.go_next() == 0
        exam.visibility_lost()
        assert exam.state.user_answers == {"q0": 1}
        assert exam.state.tab_switches == 0
        assert exam.scheduler.pending_count() == 0

    def test_callbacks(self):
        """Test on_violation per tab switch and on_locked once."""
        on_violation = Mock()
        on_locked = Mock()
        exam, _ = _session(on_violation=on_violation, on_locked=on_locked)
        exam.start()
        exam.visibility_lost()
        result = exam.submit()
        on_violation.assert_called_once_with(exam.student, 1)
        on_locked.assert_called_once_with(result)

    def test_failed_write_rolls_back(self):
        """Test a sink error leaves the attempt running so the student can submit again."""
        exam, sink = _session(sink=FlakySink())
        exam.start()
        exam.select_answer("q0", 1)

        with pytest.raises(OSError):
            exam.submit()

        assert exam.phase == ExamPhase.IN_PROGRESS
        assert exam.accepting_input
        assert not exam.state.is_submitting
        assert exam.state.submit_reason is None
        assert exam.result is None
        assert exam.timer.running
        assert exam.select_answer("q1", True) is True

        result = exam.submit()
        assert result is not None
        assert exam.phase == ExamPhase.LOCKED
        assert sink.results == [result]
        assert result.answers == {"q0": 1, "q1": True}

    def test_failed_timeout_write_is_retried(self):
        """Test a timer submission that fails to record is retried on the clock."""
        exam, sink = _session(sink=FlakySink(), duration=3)
        exam.start()

        with pytest.raises(OSError):
            exam.scheduler.advance(3)
        assert exam.phase == ExamPhase.IN_PROGRESS
        assert sink.results == []

        exam.scheduler.advance(5)
        assert exam.phase == ExamPhase.LOCKED
        assert len(sink.results) == 1
        assert sink.results[0].submit_reason == SubmitReason.TIMEOUT

    def test_integrity_not_enforced(self):
        """Test with anti-cheat disabled the attempt keeps running."""
        exam, sink = _session(enforce_integrity=False)
        exam.start()
        for _ in range(4):
            exam.visibility_lost()
        exam.scheduler.advance(10)
        assert exam.phase == ExamPhase.IN_PROGRESS
        assert exam.state.tab_switches == 4
        assert sink.results == []


class TestSnapshot:
    """Test the state view sent to the browser."""

    def test_snapshot(self):
        """Test clock, progress and integrity fields."""
        exam, _ = _session()
        exam.start()
        exam.scheduler.advance(5)
        exam.go_next()
        snap = exam.snapshot()

        assert snap["phase"] == "in_progress"
        assert snap["remaining_seconds"] == 55
        assert snap["remaining_display"] == "00:00:55"
        assert snap["progress"] == 40
        assert snap["total"] == 5
        assert snap["tab_switches"] == 0
        assert snap["question_ids"] == ["q0", "q1", "q2", "q3", "q4"]
