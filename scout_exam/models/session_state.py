"""
models/session_state.py

Per-attempt exam state (the "answer sheet").
Pydantic BaseModel so it can be serialized straight into API responses.
No transition logic here; see services/exam_session.py.
"""

import time
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt


class ExamPhase(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    WARNING = "warning"
    SUBMITTING = "submitting"
    LOCKED = "locked"


class SubmitReason(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"
    INTEGRITY = "integrity"


class StudentIdentity(BaseModel):
    """Authenticated student, supplied by the login flow."""

    code: str
    name: str = ""
    category: str = ""
    church: str = ""


class ExamState(BaseModel):
    """
    Full state of one exam attempt.

    Attributes:
        phase:               not_started → in_progress → (warning) → submitting → locked.
        current_quest_index: index of the question on screen (0-based).
        user_answers:        answer sheet. {question.id: option index | bool}
        remaining_seconds:   countdown value, decremented once per timer tick.
        tab_switches:        visibility-loss events seen so far.
        final_warning:       tab-switch limit reached, auto-submit pending.
        is_submitting:       submission has begun; input is frozen.
        is_locked:           terminal; the Result has been produced.
        start_time:          Unix timestamp of session creation.
    """

    phase: ExamPhase = ExamPhase.NOT_STARTED
    current_quest_index: int = Field(
        default=0,
        ge=0,
        description="Question on screen (0-based)"
    )
    user_answers: Dict[str, Union[StrictBool, StrictInt]] = Field(
        default_factory=dict,
        description="Answer sheet. key: question.id, value: option index or bool"
    )
    remaining_seconds: int = Field(default=0, ge=0)
    tab_switches: int = Field(default=0, ge=0)
    final_warning: bool = False
    is_submitting: bool = False
    is_locked: bool = False
    submit_reason: Optional[SubmitReason] = None
    start_time: float = Field(
        default_factory=time.time,
        description="Session creation time (Unix timestamp)"
    )
