"""
services/exam_session.py

One exam attempt as an explicit state machine:

    not_started → in_progress → (warning) → submitting → locked

Submission can be triggered by the student, by SessionTimer reaching zero, or
by IntegrityMonitor's auto-submit. All three go through submit(), which reads
and sets the submitting flag before doing anything else, so exactly one
ExamResult is produced and handed to the result sink.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

from scout_exam.models.question_model import Question
from scout_exam.models.result_model import ExamResult
from scout_exam.models.session_state import ExamPhase, ExamState, StudentIdentity, SubmitReason
from scout_exam.services.exam_service import calculate_score, count_correct
from scout_exam.services.integrity_monitor import IntegrityMonitor
from scout_exam.services.scheduler import Scheduler
from scout_exam.services.timer import SessionTimer, format_time

from config import AUTO_SUBMIT_GRACE_SECONDS, EXAM_DURATION_SECONDS, TAB_SWITCH_LIMIT

logger = logging.getLogger(__name__)

_SUBMIT_RETRY_SECONDS = 5.0

NO_QUESTIONS_MESSAGE = (
    "No questions are available for your category yet. Please try again later."
)


class ResultSink(Protocol):
    def append(self, result: ExamResult) -> None: ...


class ExamSession:
    def __init__(
        self,
        questions: List[Question],
        student: StudentIdentity,
        result_sink: ResultSink,
        scheduler: Optional[Scheduler] = None,
        duration: int = EXAM_DURATION_SECONDS,
        tab_switch_limit: int = TAB_SWITCH_LIMIT,
        grace_seconds: float = AUTO_SUBMIT_GRACE_SECONDS,
        enforce_integrity: bool = True,
        on_violation: Optional[Callable[[StudentIdentity, int], None]] = None,
        on_locked: Optional[Callable[[ExamResult], None]] = None,
    ):
        self.questions = list(questions)
        self.student = student
        self.scheduler = scheduler or Scheduler()
        self.duration = duration
        self._sink = result_sink
        self._on_locked = on_locked
        self._on_violation = on_violation

        self.state = ExamState(remaining_seconds=duration)
        self.result: Optional[ExamResult] = None
        self._by_id = {q.id: q for q in self.questions}

        self.timer = SessionTimer(
            self.scheduler,
            on_expire=lambda: self.submit(SubmitReason.TIMEOUT),
            duration=duration,
        )
        self.monitor = IntegrityMonitor(
            self.scheduler,
            on_auto_submit=lambda: self.submit(SubmitReason.INTEGRITY),
            limit=tab_switch_limit,
            grace_seconds=grace_seconds,
            enforce=enforce_integrity,
            on_violation=self._report_violation,
        )

    # ── lifecycle ───────────────────────────────────────────────────────────

    @property
    def phase(self) -> ExamPhase:
        return self.state.phase

    @property
    def has_questions(self) -> bool:
        return bool(self.questions)

    @property
    def accepting_input(self) -> bool:
        return self.state.phase in (ExamPhase.IN_PROGRESS, ExamPhase.WARNING)

    def start(self) -> bool:
        """
        Start the countdown and the integrity monitor.
        Returns False without starting anything when there are no questions.
        """
        if self.state.phase != ExamPhase.NOT_STARTED:
            return self.accepting_input
        if not self.has_questions:
            logger.warning(f"No questions for category '{self.student.category}', exam not started")
            return False

        self.state.phase = ExamPhase.IN_PROGRESS
        self.timer.start()
        self.monitor.start()
        logger.info(
            f"Exam started: code={self.student.code} questions={len(self.questions)} "
            f"duration={self.duration}s"
        )
        return True

    # ── answers & navigation ────────────────────────────────────────────────

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.state.current_quest_index]

    def select_answer(self, question_id: str, value) -> bool:
        """
        Record (or overwrite) the answer for one question.
        Returns False when input is frozen or the question id is unknown.
        Raises ValueError for a value the question cannot accept.
        """
        if not self.accepting_input:
            return False
        question = self._by_id.get(question_id)
        if question is None:
            return False
        if not question.accepts(value):
            raise ValueError(f"Invalid answer {value!r} for question {question_id}")
        self.state.user_answers[question_id] = value
        return True

    def is_answered(self, question_id: str) -> bool:
        return question_id in self.state.user_answers

    @property
    def answered_count(self) -> int:
        return len(self.state.user_answers)

    def go_next(self) -> int:
        if self.accepting_input and self.state.current_quest_index < len(self.questions) - 1:
            self.state.current_quest_index += 1
        return self.state.current_quest_index

    def go_previous(self) -> int:
        if self.accepting_input and self.state.current_quest_index > 0:
            self.state.current_quest_index -= 1
        return self.state.current_quest_index

    def go_to(self, index: int) -> int:
        if self.accepting_input and self.questions:
            self.state.current_quest_index = max(0, min(index, len(self.questions) - 1))
        return self.state.current_quest_index

    @property
    def is_last_question(self) -> bool:
        return self.state.current_quest_index == len(self.questions) - 1

    # ── integrity ───────────────────────────────────────────────────────────

    def visibility_lost(self) -> dict:
        status = self.monitor.visibility_lost()
        self.state.tab_switches = self.monitor.count
        if self.monitor.final_warning and self.state.phase == ExamPhase.IN_PROGRESS:
            self.state.phase = ExamPhase.WARNING
            self.state.final_warning = True
        return status

    def _report_violation(self, count: int) -> None:
        if self._on_violation is not None:
            self._on_violation(self.student, count)

    # ── submission ──────────────────────────────────────────────────────────

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> Optional[ExamResult]:
        """
        Grade the attempt, hand one ExamResult to the sink and lock.
        A second call returns the existing result without appending again.
        Returns None if the session never started.

        If the sink raises, the attempt goes back to where it was and the
        error propagates. A timer or integrity submission is also retried on
        the scheduler.
        """
        if self.state.is_submitting or self.state.is_locked:
            return self.result
        if self.state.phase == ExamPhase.NOT_STARTED:
            return None

        previous_phase = self.state.phase
        self.state.is_submitting = True
        self.state.phase = ExamPhase.SUBMITTING
        self.state.submit_reason = reason
        self.timer.stop()
        self.monitor.stop()
        self.state.remaining_seconds = self.timer.remaining

        answers = dict(self.state.user_answers)
        correct = count_correct(self.questions, answers)
        result = ExamResult(
            exam_code=self.student.code,
            user_name=self.student.name,
            user_category=self.student.category,
            church=self.student.church,
            score=calculate_score(self.questions, answers),
            correct_answers=correct,
            total_questions=len(self.questions),
            answers=answers,
            tab_switches=self.monitor.count,
            submit_reason=reason,
            duration_seconds=self.duration - self.timer.remaining,
            status="cheated" if reason == SubmitReason.INTEGRITY else "pending",
            lock_reason="integrity" if reason == SubmitReason.INTEGRITY else None,
        )
        try:
            self._sink.append(result)
        except Exception as e:
            logger.error(f"Could not record result for code={self.student.code}, submission rolled back: {e}")
            self._resume(previous_phase, reason)
            raise
        self.result = result

        self.state.is_locked = True
        self.state.phase = ExamPhase.LOCKED
        logger.info(
            f"Exam submitted ({reason.value}): code={result.exam_code} "
            f"score={result.score}% ({correct}/{result.total_questions}) "
            f"tab_switches={result.tab_switches}"
        )
        if self._on_locked is not None:
            self._on_locked(result)
        return result

    def _resume(self, phase: ExamPhase, reason: SubmitReason) -> None:
        self.state.is_submitting = False
        self.state.submit_reason = None
        self.state.phase = phase
        self.timer.start()
        self.monitor.start()
        if reason != SubmitReason.MANUAL:
            self.scheduler.call_later(_SUBMIT_RETRY_SECONDS, lambda: self.submit(reason))

    # ── views ───────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        total = len(self.questions)
        self.state.remaining_seconds = self.timer.remaining
        return {
            "phase": self.state.phase.value,
            "current_quest_index": self.state.current_quest_index,
            "total": total,
            "answered_count": self.answered_count,
            "user_answers": dict(self.state.user_answers),
            "question_ids": [q.id for q in self.questions],
            "remaining_seconds": self.timer.remaining,
            "remaining_display": format_time(self.timer.remaining),
            "time_warning": self.timer.is_warning,
            "progress": round((self.state.current_quest_index + 1) / total * 100) if total else 0,
            "is_submitting": self.state.is_submitting,
            "is_locked": self.state.is_locked,
            "submit_reason": self.state.submit_reason.value if self.state.submit_reason else None,
            "start_time": self.state.start_time,
            **self.monitor.status(),
        }
