"""
models/result_model.py

Persisted exam result. Created once per completed attempt; afterwards only
the evaluation and administration flows touch it.
"""

import uuid
from datetime import datetime
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt

from scout_exam.models.session_state import SubmitReason

ResultStatus = Literal["pending", "completed", "locked", "cheated"]


def _now() -> datetime:
    return datetime.now().astimezone()


class ExamResult(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    exam_code: str
    user_name: str = ""
    user_category: str = ""
    church: str = ""

    score: int = Field(..., ge=0, le=100, description="Automatic score in percent")
    correct_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    answers: Dict[str, Union[StrictBool, StrictInt]] = Field(default_factory=dict)
    submitted_at: datetime = Field(default_factory=_now)
    tab_switches: int = 0
    submit_reason: SubmitReason = SubmitReason.MANUAL
    duration_seconds: int = 0

    status: ResultStatus = "pending"
    lock_reason: Optional[str] = None

    # leader evaluation
    leader_score: Optional[int] = Field(None, ge=0, le=100)
    final_score: Optional[int] = Field(None, ge=0, le=100)
    criteria_scores: Dict[str, int] = Field(default_factory=dict)
    evaluation_notes: str = ""
    evaluated_at: Optional[datetime] = None
    evaluated_by: Optional[str] = None

    @property
    def effective_score(self) -> int:
        """Leader score overrides the automatic score once evaluated."""
        return self.final_score if self.final_score is not None else self.score
