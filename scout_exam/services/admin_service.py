"""
services/admin_service.py

Administration use cases behind the dashboard: users, questions, results,
integrity alerts and system maintenance. Every state-changing action is
written to the activity log.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, TypeAdapter

from scout_exam.models.admin_models import Alert, SystemStats, User
from scout_exam.models.question_model import Question
from scout_exam.models.result_model import ExamResult
from scout_exam.models.session_state import StudentIdentity
from scout_exam.services import csv_service
from scout_exam.services.auth_service import AuthService
from scout_exam.services.errors import AuthenticationError
from scout_exam.services.integrity_monitor import severity_for
from scout_exam.services.storage import Repositories

import config

logger = logging.getLogger(__name__)

ADMIN_USER = "admin"


# ── filters ──────────────────────────────────────────────────────────────────

def filter_users(users: Iterable[User], search: str = "", category: str = "all") -> List[User]:
    term = search.lower()
    return [
        u for u in users
        if (not term or term in u.name.lower() or term in u.code.lower() or term in u.church.lower())
        and (category == "all" or u.category == category)
    ]


def filter_questions(questions: Iterable[Question], search: str = "", category: str = "all",
                     qtype: str = "all") -> List[Question]:
    term = search.lower()
    return [
        q for q in questions
        if (not term or term in q.question.lower())
        and (category == "all" or q.category == category)
        and (qtype == "all" or q.type == qtype)
    ]


class ResultFilter(BaseModel):
    search: str = ""
    category: str = "all"
    church: str = "all"
    statuses: List[str] = Field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_score: Optional[int] = None
    has_alerts: bool = False


_DATETIME = TypeAdapter(datetime)


def parse_upper_bound(value: Optional[str]) -> Optional[datetime]:
    """
    `date_to` filter value. A bare date (YYYY-MM-DD) covers that whole day;
    anything longer is read as a datetime. Raises ValueError if unreadable.
    """
    if not value:
        return None
    if len(value) == 10:
        try:
            return datetime.combine(date.fromisoformat(value), time.max)
        except ValueError:
            pass
    return _DATETIME.validate_python(value)


def _after(ts: datetime, bound: Optional[datetime]) -> bool:
    if bound is None:
        return True
    if bound.tzinfo is None:
        ts = ts.replace(tzinfo=None)
    return ts >= bound


def _before(ts: datetime, bound: Optional[datetime]) -> bool:
    if bound is None:
        return True
    if bound.tzinfo is None:
        ts = ts.replace(tzinfo=None)
    return ts <= bound


def filter_results(results: Iterable[ExamResult], f: ResultFilter) -> List[ExamResult]:
    term = f.search.lower()
    out = []
    for r in results:
        if term and not (term in r.exam_code.lower() or term in r.user_name.lower()
                         or term in r.church.lower()):
            continue
        if f.category != "all" and r.user_category != f.category:
            continue
        if f.church != "all" and r.church != f.church:
            continue
        if f.statuses and r.status not in f.statuses:
            continue
        if not (_after(r.submitted_at, f.date_from) and _before(r.submitted_at, f.date_to)):
            continue
        if f.min_score is not None and r.score < f.min_score:
            continue
        if f.has_alerts and r.tab_switches == 0:
            continue
        out.append(r)
    return out


class AlertFilter(BaseModel):
    search: str = ""
    category: str = "all"
    church: str = "all"
    alert_type: str = "all"
    status: str = "all"
    severity: str = "all"
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


def filter_alerts(alerts: Iterable[Alert], f: AlertFilter) -> List[Alert]:
    term = f.search.lower()
    out = []
    for a in alerts:
        if term and not any(term in v.lower() for v in (a.user_code, a.user_name, a.church, a.exam_name)):
            continue
        if f.category != "all" and a.category != f.category:
            continue
        if f.church != "all" and a.church != f.church:
            continue
        if f.alert_type != "all" and a.alert_type != f.alert_type:
            continue
        if f.status != "all" and a.status != f.status:
            continue
        if f.severity != "all" and a.severity != f.severity:
            continue
        if not (_after(a.timestamp, f.date_from) and _before(a.timestamp, f.date_to)):
            continue
        out.append(a)
    return out


# ══════════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════════

def _check_question_category(question: Question) -> None:
    if question.category and question.category not in config.CATEGORIES:
        raise ValueError(f'Invalid category "{question.category}"')


AlertAction = Literal["review", "clear", "lock"]


class AdminService:
    def __init__(self, repos: Repositories, auth: Optional[AuthService] = None):
        self.repos = repos
        self.auth = auth or AuthService(repos)

    def _log(self, action: str, details: str = "", status: str = "success") -> None:
        self.repos.logs.add(action, details, status, admin_user=ADMIN_USER)
        logger.info(f"[admin] {action}: {details}")

    # ── users ───────────────────────────────────────────────────────────────

    def add_user(self, user: User) -> User:
        if user.category not in config.CATEGORIES:
            raise ValueError(f'Invalid category "{user.category}"')
        self.repos.users.add(user)
        self._log("Add user", f"{user.code} ({user.name})")
        return user

    def update_user(self, user: User) -> User:
        if user.category not in config.CATEGORIES:
            raise ValueError(f'Invalid category "{user.category}"')
        self.repos.users.update(user)
        self._log("Update user", user.code)
        return user

    def delete_users(self, codes: List[str]) -> int:
        removed = self.repos.users.delete_many(codes)
        self._log("Delete users", f"{removed} user(s) removed")
        return removed

    def import_users(self, text: str, replace: bool = False) -> csv_service.ImportReport:
        existing = {u.code for u in self.repos.users.all()}
        users, report = csv_service.import_users(text, existing, replace=replace)
        if replace:
            self.repos.users.replace_all(users)
        else:
            report.added = self.repos.users.extend(users)
        self._log("Replace users" if replace else "Import users", report.summary(),
                  "warning" if report.errors else "success")
        return report

    # ── questions ───────────────────────────────────────────────────────────

    def add_question(self, question: Question) -> Question:
        _check_question_category(question)
        self.repos.questions.add(question)
        self._log("Add question", question.id)
        return question

    def update_question(self, question: Question) -> Question:
        _check_question_category(question)
        self.repos.questions.update(question)
        self._log("Update question", question.id)
        return question

    def delete_question(self, question_id: str) -> None:
        self.repos.questions.delete(question_id)
        self._log("Delete question", question_id)

    def import_questions(self, text: str) -> csv_service.ImportReport:
        questions, report = csv_service.import_questions(text)
        report.added = self.repos.questions.extend(questions)
        self._log("Import questions", report.summary(),
                  "warning" if report.errors else "success")
        return report

    # ── results ─────────────────────────────────────────────────────────────

    def delete_result(self, result_id: str) -> ExamResult:
        result = self.repos.results.delete(result_id)
        self._log("Delete result", f"{result.exam_code} ({result.user_name})", "warning")
        return result

    def reset_attempt(self, result_id: str) -> ExamResult:
        """Back to pending: evaluation and lock cleared, exam code usable again."""
        result = self.repos.results.get(result_id)
        updated = result.model_copy(update={
            "status": "pending",
            "leader_score": None,
            "final_score": None,
            "criteria_scores": {},
            "evaluation_notes": "",
            "evaluated_at": None,
            "evaluated_by": None,
            "lock_reason": None,
        })
        self.repos.results.update(updated)
        self.repos.users.release(result.exam_code)
        self._log("Reset attempt", result.exam_code)
        return updated

    # ── alerts ──────────────────────────────────────────────────────────────

    def record_violation(self, student: StudentIdentity, count: int,
                         limit: int = config.TAB_SWITCH_LIMIT) -> Alert:
        alert = Alert(
            user_code=student.code,
            user_name=student.name,
            church=student.church,
            category=student.category,
            exam_name=student.category,
            alert_type="tab_switch",
            alert_count=count,
            severity=severity_for(count, limit),
            details=f"Tab switch {count}/{limit}",
        )
        self.repos.alerts.append(alert)
        return alert

    def bulk_alert_action(self, alert_ids: List[str], action: AlertAction) -> int:
        if not alert_ids:
            raise ValueError("No alerts selected.")
        status = "reviewed" if action == "review" else "cleared"
        changed = self.repos.alerts.set_status(alert_ids, status)
        if action == "lock":
            for code in {a.user_code for a in changed}:
                result = self.repos.results.find_by_code(code)
                if result is not None:
                    self.repos.results.update(result.model_copy(
                        update={"status": "locked", "lock_reason": "integrity"}
                    ))
        self._log(f"Alerts: {action}", f"{len(changed)} alert(s)")
        return len(changed)

    def delete_alert(self, alert_id: str) -> None:
        self.repos.alerts.delete(alert_id)
        self._log("Delete alert", alert_id)

    # ── system ──────────────────────────────────────────────────────────────

    def stats(self) -> SystemStats:
        users = self.repos.users.all()
        return SystemStats(
            total_users=len(users),
            total_questions=self.repos.questions.count(),
            total_completed_attempts=self.repos.results.count(),
            total_alerts_logged=self.repos.alerts.count(),
            category_counts=[
                {"name": c, "count": sum(1 for u in users if u.category == c)}
                for c in config.CATEGORIES
            ],
        )

    def _require_admin_password(self, password: str, action: str) -> None:
        if not self.auth.check_admin_password(password):
            self._log(action, "refused: wrong admin password", "error")
            raise AuthenticationError("Incorrect admin password.")

    def reset_results(self, password: str) -> int:
        self._require_admin_password(password, "Reset results")
        removed = self.repos.results.clear()
        self._log("Reset results", f"{removed} result(s) cleared", "warning")
        return removed

    def reset_all(self, password: str) -> None:
        self._require_admin_password(password, "Reset all data")
        self.repos.store.reset(keep_settings=True)
        self._log("Reset all data", "All users, questions, results and alerts cleared", "warning")

    def change_password(self, current: str, new: str, confirm: str) -> None:
        try:
            self.auth.change_admin_password(current, new, confirm)
        except (AuthenticationError, ValueError) as e:
            self._log("Change admin password", str(e), "error")
            raise
        self._log("Change admin password", "Admin password updated")

    def anti_cheat_enabled(self) -> bool:
        return bool(self.repos.settings.get("anti_cheat_enabled", True))

    def set_anti_cheat(self, enabled: bool) -> None:
        self.repos.settings.set("anti_cheat_enabled", enabled)
        self._log("Anti-cheat", "enabled" if enabled else "disabled",
                  "success" if enabled else "warning")

    def backup(self) -> Dict[str, Any]:
        doc = self.repos.store.export_document()
        self._log("Backup", "Full backup created")
        return doc

    def restore(self, doc: Dict[str, Any]) -> None:
        self.repos.store.import_document(doc)
        self._log("Restore", "Data restored from backup", "warning")
