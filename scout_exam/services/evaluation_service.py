"""
services/evaluation_service.py

Leader evaluation after the automatic score.

Two entry points share the same result update:
  - student screen: one slider score (0–100) behind the shared leader password
  - admin dashboard: weighted criteria, every criterion required
Either way the leader score overrides the automatic score and the result is locked.
"""

import hmac
import logging
from datetime import datetime
from typing import Dict, List, Optional

from scout_exam.models.result_model import ExamResult
from scout_exam.services.errors import AuthenticationError, ConflictError, NotFoundError
from scout_exam.services.exam_service import round_half_up
from scout_exam.services.storage import Repositories

import config

logger = logging.getLogger(__name__)


def weighted_score(scores: Dict[str, int]) -> int:
    """
    Σ score × weight / 100 over config.EVALUATION_CRITERIA.

    Raises:
        ValueError: a criterion is missing or a score is outside 0..100.
    """
    missing = [cid for cid, _, _ in config.EVALUATION_CRITERIA if cid not in scores]
    if missing:
        raise ValueError(f"Missing evaluation scores: {', '.join(missing)}")
    total = 0.0
    for cid, _, weight in config.EVALUATION_CRITERIA:
        value = scores[cid]
        if not 0 <= value <= 100:
            raise ValueError(f"Score for {cid} must be between 0 and 100.")
        total += value * weight / 100
    return round_half_up(total)


class EvaluationService:
    def __init__(self, repos: Repositories):
        self.repos = repos

    def leader_passwords(self) -> List[str]:
        passwords = self.repos.settings.get("leader_passwords")
        return passwords or [config.LEADER_PASSWORD]

    def verify_leader(self, password: str) -> bool:
        given = (password or "").encode("utf-8")
        return any(hmac.compare_digest(given, p.encode("utf-8")) for p in self.leader_passwords())

    def _require_leader(self, password: str) -> None:
        if not self.verify_leader(password):
            logger.warning("Leader evaluation refused: wrong password")
            raise AuthenticationError("Incorrect leader password.")

    def _apply(self, result: ExamResult, score: int, evaluated_by: str,
               criteria: Optional[Dict[str, int]] = None, notes: str = "") -> ExamResult:
        if result.status == "locked" and result.evaluated_at is not None:
            raise ConflictError("This exam has already been evaluated and locked.")
        updated = result.model_copy(update={
            "leader_score": score,
            "final_score": score,
            "criteria_scores": criteria or {},
            "evaluation_notes": notes,
            "evaluated_at": datetime.now().astimezone(),
            "evaluated_by": evaluated_by,
            "status": "locked",
            "lock_reason": result.lock_reason or "evaluated",
        })
        self.repos.results.update(updated)
        logger.info(f"Evaluation saved: code={result.exam_code} final={score}% by {evaluated_by}")
        return updated

    def apply_leader_score(self, exam_code: str, score: int, password: str) -> ExamResult:
        """Student-side evaluation screen: a single 0–100 score."""
        self._require_leader(password)
        if not 0 <= score <= 100:
            raise ValueError("Evaluation score must be between 0 and 100.")
        result = self.repos.results.find_by_code(exam_code)
        if result is None:
            raise NotFoundError("No exam result found for this code.")
        return self._apply(result, score, evaluated_by="Leader")

    def submit_criteria(self, result_id: str, scores: Dict[str, int], password: str,
                        notes: str = "") -> ExamResult:
        """Admin-side evaluation with weighted criteria."""
        self._require_leader(password)
        final = weighted_score(scores)
        result = self.repos.results.get(result_id)
        return self._apply(result, final, evaluated_by="Leader", criteria=dict(scores), notes=notes)

    def pending(self, category: str = "all", status: str = "all") -> List[ExamResult]:
        items = self.repos.results.all()
        if category != "all":
            items = [r for r in items if r.user_category == category]
        if status != "all":
            items = [r for r in items if r.status == status]
        return items

    def counts(self) -> Dict[str, int]:
        items = self.repos.results.all()
        return {s: sum(1 for r in items if r.status == s) for s in ("pending", "completed", "locked")}
