"""
services/storage.py — JSON-file repository

Durable state shared by all web sessions: users, questions, results,
integrity alerts, the admin activity log, used exam codes and settings.

A single DataStore owns the document and a re-entrant lock; the typed
repositories below (QuestionBank, ResultStore, ...) are thin views over it
and are what the rest of the code receives. With path=None the store is
memory-only (tests).
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError

from scout_exam.models.admin_models import Alert, SystemLog, User
from scout_exam.models.question_model import Question
from scout_exam.models.result_model import ExamResult
from scout_exam.services.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

_COLLECTIONS = ("users", "questions", "results", "alerts", "logs", "used_codes")


def _empty_document() -> Dict[str, Any]:
    doc: Dict[str, Any] = {name: [] for name in _COLLECTIONS}
    doc["settings"] = {}
    return doc


class DataStore:
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.RLock()
        self._doc = _empty_document()
        if path:
            self.load()

    # ── persistence ─────────────────────────────────────────────────────────

    def load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read data file {self.path}: {e}")
            raise
        with self._lock:
            self._doc = _empty_document()
            self._doc.update({k: v for k, v in raw.items() if k in self._doc})
        logger.info(f"Data loaded from {self.path}")

    def save(self) -> None:
        with self._lock:
            self._write(self._doc)

    def _write(self, doc: Dict[str, Any]) -> None:
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with self._lock:
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(doc, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except OSError:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """Hold the lock and yield a working copy of the document.

        The copy replaces the live document only once it is on disk, so a
        failed write or an exception in the block changes nothing.
        """
        with self._lock:
            draft = json.loads(json.dumps(self._doc))
            yield draft
            self._write(draft)
            self._doc = draft

    def read(self, name: str) -> Any:
        with self._lock:
            return json.loads(json.dumps(self._doc[name]))

    # ── backup / restore ────────────────────────────────────────────────────

    def export_document(self) -> Dict[str, Any]:
        with self._lock:
            return json.loads(json.dumps(self._doc))

    def import_document(self, doc: Dict[str, Any]) -> None:
        """Replace everything with a backup. Records are validated before anything is swapped."""
        if not isinstance(doc, dict):
            raise ValueError("Backup must be a JSON object.")
        unknown = set(doc) - set(_COLLECTIONS) - {"settings"}
        if unknown:
            raise ValueError(f"Unknown sections in backup: {', '.join(sorted(unknown))}")
        try:
            for item in doc.get("users", []):
                User.model_validate(item)
            for item in doc.get("questions", []):
                Question.model_validate(item)
            for item in doc.get("results", []):
                ExamResult.model_validate(item)
            for item in doc.get("alerts", []):
                Alert.model_validate(item)
        except ValidationError as e:
            raise ValueError(f"Backup contains invalid records: {e.error_count()} error(s)") from e

        fresh = _empty_document()
        fresh.update(doc)
        with self.transaction() as d:
            d.clear()
            d.update(fresh)

    def reset(self, keep_settings: bool = True) -> None:
        with self.transaction() as d:
            settings = d.get("settings", {}) if keep_settings else {}
            d.clear()
            d.update(_empty_document())
            d["settings"] = settings


# ══════════════════════════════════════════════════════════════════════════════
# Repositories
# ══════════════════════════════════════════════════════════════════════════════

class QuestionBank:
    def __init__(self, store: DataStore):
        self._store = store

    def all(self) -> List[Question]:
        return [Question.model_validate(q) for q in self._store.read("questions")]

    def for_category(self, category: str) -> List[Question]:
        """Questions with no category tag, or tagged with `category`. Bank order is kept."""
        return [q for q in self.all() if not q.category or q.category == category]

    def get(self, question_id: str) -> Question:
        for q in self.all():
            if q.id == question_id:
                return q
        raise NotFoundError(f"Question {question_id} not found")

    def add(self, question: Question) -> Question:
        with self._store.transaction() as d:
            if any(q["id"] == question.id for q in d["questions"]):
                raise ConflictError(f"Question {question.id} already exists")
            d["questions"].append(question.model_dump(mode="json"))
        return question

    def extend(self, questions: Iterable[Question]) -> int:
        added = 0
        with self._store.transaction() as d:
            existing = {q["id"] for q in d["questions"]}
            for q in questions:
                if q.id in existing:
                    continue
                d["questions"].append(q.model_dump(mode="json"))
                existing.add(q.id)
                added += 1
        return added

    def update(self, question: Question) -> Question:
        with self._store.transaction() as d:
            for i, q in enumerate(d["questions"]):
                if q["id"] == question.id:
                    d["questions"][i] = question.model_dump(mode="json")
                    return question
        raise NotFoundError(f"Question {question.id} not found")

    def delete(self, question_id: str) -> None:
        with self._store.transaction() as d:
            before = len(d["questions"])
            d["questions"] = [q for q in d["questions"] if q["id"] != question_id]
            if len(d["questions"]) == before:
                raise NotFoundError(f"Question {question_id} not found")

    def count(self) -> int:
        return len(self._store.read("questions"))


class UserStore:
    def __init__(self, store: DataStore):
        self._store = store

    def all(self) -> List[User]:
        return [User.model_validate(u) for u in self._store.read("users")]

    def find(self, code: str) -> Optional[User]:
        for u in self.all():
            if u.code == code:
                return u
        return None

    def get(self, code: str) -> User:
        user = self.find(code)
        if user is None:
            raise NotFoundError(f"User {code} not found")
        return user

    def add(self, user: User) -> User:
        with self._store.transaction() as d:
            if any(u["code"] == user.code for u in d["users"]):
                raise ConflictError(f"User {user.code} already exists")
            d["users"].append(user.model_dump(mode="json"))
        return user

    def extend(self, users: Iterable[User]) -> int:
        added = 0
        with self._store.transaction() as d:
            existing = {u["code"] for u in d["users"]}
            for u in users:
                if u.code in existing:
                    continue
                d["users"].append(u.model_dump(mode="json"))
                existing.add(u.code)
                added += 1
        return added

    def replace_all(self, users: Iterable[User]) -> int:
        with self._store.transaction() as d:
            d["users"] = [u.model_dump(mode="json") for u in users]
            return len(d["users"])

    def update(self, user: User) -> User:
        with self._store.transaction() as d:
            for i, u in enumerate(d["users"]):
                if u["code"] == user.code:
                    d["users"][i] = user.model_dump(mode="json")
                    return user
        raise NotFoundError(f"User {user.code} not found")

    def delete_many(self, codes: Iterable[str]) -> int:
        codes = set(codes)
        with self._store.transaction() as d:
            before = len(d["users"])
            d["users"] = [u for u in d["users"] if u["code"] not in codes]
            return before - len(d["users"])

    def count(self) -> int:
        return len(self._store.read("users"))

    # one-time codes

    def is_used(self, code: str) -> bool:
        return code in self._store.read("used_codes")

    def mark_used(self, code: str) -> None:
        with self._store.transaction() as d:
            if code not in d["used_codes"]:
                d["used_codes"].append(code)

    def release(self, code: str) -> None:
        with self._store.transaction() as d:
            d["used_codes"] = [c for c in d["used_codes"] if c != code]


class ResultStore:
    """Append-only from the exam side; administration may update or delete."""

    def __init__(self, store: DataStore):
        self._store = store

    def append(self, result: ExamResult) -> None:
        with self._store.transaction() as d:
            if any(r["id"] == result.id for r in d["results"]):
                raise ConflictError(f"Result {result.id} already recorded")
            d["results"].append(result.model_dump(mode="json"))

    def all(self) -> List[ExamResult]:
        return [ExamResult.model_validate(r) for r in self._store.read("results")]

    def get(self, result_id: str) -> ExamResult:
        for r in self.all():
            if r.id == result_id:
                return r
        raise NotFoundError(f"Result {result_id} not found")

    def find_by_code(self, exam_code: str) -> Optional[ExamResult]:
        """Latest result for an exam code."""
        matches = [r for r in self.all() if r.exam_code == exam_code]
        return matches[-1] if matches else None

    def update(self, result: ExamResult) -> ExamResult:
        with self._store.transaction() as d:
            for i, r in enumerate(d["results"]):
                if r["id"] == result.id:
                    d["results"][i] = result.model_dump(mode="json")
                    return result
        raise NotFoundError(f"Result {result.id} not found")

    def delete(self, result_id: str) -> ExamResult:
        result = self.get(result_id)
        with self._store.transaction() as d:
            d["results"] = [r for r in d["results"] if r["id"] != result_id]
        return result

    def clear(self) -> int:
        with self._store.transaction() as d:
            removed = len(d["results"])
            d["results"] = []
            d["used_codes"] = []
        return removed

    def count(self) -> int:
        return len(self._store.read("results"))


class AlertStore:
    def __init__(self, store: DataStore):
        self._store = store

    def append(self, alert: Alert) -> None:
        with self._store.transaction() as d:
            d["alerts"].append(alert.model_dump(mode="json"))

    def all(self) -> List[Alert]:
        return [Alert.model_validate(a) for a in self._store.read("alerts")]

    def set_status(self, alert_ids: Iterable[str], status: str) -> List[Alert]:
        ids = set(alert_ids)
        changed: List[Alert] = []
        with self._store.transaction() as d:
            for a in d["alerts"]:
                if a["id"] in ids:
                    a["status"] = status
                    changed.append(Alert.model_validate(a))
        return changed

    def delete(self, alert_id: str) -> None:
        with self._store.transaction() as d:
            before = len(d["alerts"])
            d["alerts"] = [a for a in d["alerts"] if a["id"] != alert_id]
            if len(d["alerts"]) == before:
                raise NotFoundError(f"Alert {alert_id} not found")

    def count(self) -> int:
        return len(self._store.read("alerts"))


class ActivityLog:
    def __init__(self, store: DataStore):
        self._store = store

    def add(self, action: str, details: str = "", status: str = "success",
            admin_user: str = "") -> SystemLog:
        entry = SystemLog(action=action, details=details, status=status, admin_user=admin_user)
        with self._store.transaction() as d:
            d["logs"].insert(0, entry.model_dump(mode="json"))
        return entry

    def all(self) -> List[SystemLog]:
        return [SystemLog.model_validate(e) for e in self._store.read("logs")]


class Settings:
    def __init__(self, store: DataStore):
        self._store = store

    def get(self, key: str, default: Any = None) -> Any:
        return self._store.read("settings").get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._store.transaction() as d:
            d["settings"][key] = value


class Repositories:
    """Bundle handed to services and routes."""

    def __init__(self, store: DataStore):
        self.store = store
        self.questions = QuestionBank(store)
        self.users = UserStore(store)
        self.results = ResultStore(store)
        self.alerts = AlertStore(store)
        self.logs = ActivityLog(store)
        self.settings = Settings(store)
