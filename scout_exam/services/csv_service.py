"""
services/csv_service.py

CSV import / export for the admin dashboard.
Public API:
  - import_users(text, existing_codes, replace)   -> (List[User], ImportReport)
  - import_questions(text, id_factory)            -> (List[Question], ImportReport)
  - export_users / export_questions / export_results / export_alerts -> str
  - USERS_TEMPLATE / QUESTIONS_TEMPLATE

Files are UTF-8; a leading BOM is accepted on import and written on export
so spreadsheet tools pick the right encoding for Arabic text.
Bad rows are skipped and reported, never fatal.
"""

import csv
import io
import logging
import uuid
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field, ValidationError

from scout_exam.models.admin_models import Alert, User
from scout_exam.models.question_model import Question
from scout_exam.models.result_model import ExamResult

from config import CATEGORIES

logger = logging.getLogger(__name__)

BOM = "\ufeff"
_MIN_CODE_LENGTH = 3

USER_HEADER = ["Code", "Name", "Church", "Category", "Password", "Email"]
QUESTION_HEADER = [
    "Category", "Type", "Question", "Question EN",
    "Option 1", "Option 2", "Option 3", "Option 4",
    "Correct Answer", "Image",
]


class ImportReport(BaseModel):
    added: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    replaced: bool = False

    def summary(self) -> str:
        parts = [f"{self.added} added"]
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        return ", ".join(parts)


# ── helpers ──────────────────────────────────────────────────────────────────

def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith(BOM) else text


def _rows(text: str) -> List[Tuple[int, List[str]]]:
    """(line number, cells) for every non-blank data row. The header row is dropped."""
    reader = csv.reader(io.StringIO(_strip_bom(text)))
    out = []
    for line_no, row in enumerate(reader, start=1):
        if line_no == 1:
            continue
        cells = [c.strip() for c in row]
        if not any(cells):
            continue
        out.append((line_no, cells))
    return out


def _write(header: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return BOM + buf.getvalue()


def decode_upload(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValueError("File must be UTF-8 encoded CSV.") from e


# ══════════════════════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════════════════════

USERS_TEMPLATE = _write(USER_HEADER, [
    ["1001", "أحمد محمد", "العذراء", "كشافة ومرشدات", "12345678", "ahmed@example.com"],
    ["1002", "فاطمة علي", "مار جرجس", "أشبال وزهرات", "87654321", "fatma@example.com"],
    ["1003", "محمد حسن", "الأنبا أنطونيوس", "جوالة ودليلات", "11223344", "mohamed@example.com"],
])


def import_users(
    text: str,
    existing_codes: Set[str],
    replace: bool = False,
) -> Tuple[List[User], ImportReport]:
    """
    Parse a users CSV (Code,Name,Church,Category,Password,Email).

    Rows are rejected when they have fewer than 6 fields, a code shorter than
    3 characters, an unknown category, or a code that already exists (unless
    `replace` is set, in which case the import becomes the whole user list).
    """
    report = ImportReport(replaced=replace)
    users: List[User] = []
    seen: Set[str] = set()

    for line_no, cells in _rows(text):
        if len(cells) < len(USER_HEADER):
            report.errors.append(
                f"Line {line_no}: incomplete row ({len(cells)} of {len(USER_HEADER)} fields)"
            )
            continue
        code, name, church, category, password, email = cells[:6]
        if len(code) < _MIN_CODE_LENGTH:
            report.errors.append(f"Line {line_no}: invalid user code")
            continue
        if code in seen or (code in existing_codes and not replace):
            report.errors.append(f"Line {line_no}: user {code} already exists")
            continue
        if category not in CATEGORIES:
            report.errors.append(f'Line {line_no}: invalid category "{category}"')
            continue
        try:
            user = User(code=code, name=name, church=church, category=category,
                        password=password, email=email, status="active")
        except ValidationError as e:
            report.errors.append(f"Line {line_no}: {e.errors()[0]['msg']}")
            continue
        users.append(user)
        seen.add(code)

    report.added = len(users)
    report.skipped = len(report.errors)
    logger.info(f"Users CSV parsed: {report.summary()}")
    return users, report


def export_users(users: Iterable[User]) -> str:
    return _write(USER_HEADER + ["Status"], (
        [u.code, u.name, u.church, u.category, u.password, u.email, u.status] for u in users
    ))


# ══════════════════════════════════════════════════════════════════════════════
# Questions
# ══════════════════════════════════════════════════════════════════════════════

QUESTIONS_TEMPLATE = _write(QUESTION_HEADER, [
    ["جوالة ودليلات", "mcq", "من صفات الجوال؟", "", "الاتكال على الغير", "التعاون",
     "السلبية", "التردد", "2", ""],
    ["كشافة ومرشدات", "truefalse", "الوعد الكشفي يتضمن الولاء لله والوطن والقانون الكشفي",
     "", "", "", "", "", "true", ""],
])


def _parse_correct(qtype: str, raw: str):
    if qtype == "truefalse":
        lowered = raw.lower()
        if lowered not in ("true", "false"):
            raise ValueError(f'correct answer must be true or false, got "{raw}"')
        return lowered == "true"
    try:
        return int(raw) - 1  # 1-based in the sheet
    except ValueError:
        raise ValueError(f'correct answer must be an option number, got "{raw}"') from None


def import_questions(
    text: str,
    id_factory: Optional[Callable[[], str]] = None,
) -> Tuple[List[Question], ImportReport]:
    """
    Parse a questions CSV (see QUESTION_HEADER).
    mcq answers are 1-based option numbers; truefalse answers are true/false.
    """
    new_id = id_factory or (lambda: uuid.uuid4().hex[:12])
    report = ImportReport()
    questions: List[Question] = []

    for line_no, cells in _rows(text):
        cells = cells + [""] * (len(QUESTION_HEADER) - len(cells))
        category, qtype, text_ar, text_en, o1, o2, o3, o4, correct, image = cells[:10]
        qtype = (qtype or "mcq").lower()
        if qtype not in ("mcq", "truefalse"):
            report.errors.append(f'Line {line_no}: unknown question type "{qtype}"')
            continue
        if category and category not in CATEGORIES:
            report.errors.append(f'Line {line_no}: invalid category "{category}"')
            continue
        try:
            question = Question(
                id=new_id(),
                question=text_ar,
                type=qtype,
                options=[o1, o2, o3, o4] if qtype == "mcq" else [],
                correct_answer=_parse_correct(qtype, correct),
                category=category or None,
                question_en=text_en or None,
                image=image or None,
            )
        except ValidationError as e:
            report.errors.append(f"Line {line_no}: {e.errors()[0]['msg']}")
            continue
        except ValueError as e:
            report.errors.append(f"Line {line_no}: {e}")
            continue
        questions.append(question)

    report.added = len(questions)
    report.skipped = len(report.errors)
    logger.info(f"Questions CSV parsed: {report.summary()}")
    return questions, report


def export_questions(questions: Iterable[Question]) -> str:
    rows = []
    for q in questions:
        opts = (q.options + [""] * 4)[:4]
        if q.type == "truefalse":
            correct = "true" if q.correct_answer else "false"
        else:
            correct = q.correct_answer + 1
        rows.append([q.category or "", q.type, q.question, q.question_en or "",
                     *opts, correct, q.image or ""])
    return _write(QUESTION_HEADER, rows)


# ══════════════════════════════════════════════════════════════════════════════
# Results / alerts
# ══════════════════════════════════════════════════════════════════════════════

RESULT_HEADER = [
    "Code", "Name", "Church", "Category", "Correct", "Total", "Score %",
    "Leader Score", "Final Score", "Status", "Submitted At", "Evaluated By",
    "Duration (s)", "Submit Reason", "Lock Reason", "Tab Switches",
]

ALERT_HEADER = [
    "Code", "Name", "Church", "Category", "Exam", "Type", "Timestamp",
    "Count", "Status", "Severity", "Details",
]


def export_results(results: Iterable[ExamResult]) -> str:
    return _write(RESULT_HEADER, (
        [r.exam_code, r.user_name, r.church, r.user_category, r.correct_answers,
         r.total_questions, r.score, r.leader_score, r.effective_score, r.status,
         r.submitted_at.isoformat(), r.evaluated_by, r.duration_seconds,
         r.submit_reason.value, r.lock_reason, r.tab_switches]
        for r in results
    ))


def export_alerts(alerts: Iterable[Alert]) -> str:
    return _write(ALERT_HEADER, (
        [a.user_code, a.user_name, a.church, a.category, a.exam_name, a.alert_type,
         a.timestamp.isoformat(), a.alert_count, a.status, a.severity, a.details]
        for a in alerts
    ))
