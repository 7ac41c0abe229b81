"""
api/session.py — multi-user in-memory web sessions (cookie based)

Each browser gets a UUID session id with its own state (login role, student
identity, live ExamSession). Sessions expire after SESSION_TTL without
access, except while an exam is running.

Running exams are also registered by student code, independent of any web
session: logging out or in again, or a second browser with the same code,
reattaches to the same ExamSession, and its clock keeps ticking while no
browser holds it.

One re-entrant lock guards every session, and the exam ticker takes the same
lock, so request handlers and timer ticks never interleave on one exam.
"""

import logging
import threading
import time
import uuid
from typing import Any, Optional

from config import SESSION_TTL

logger = logging.getLogger(__name__)

_lock = threading.RLock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}
_exams: dict[str, Any] = {}  # student code -> live ExamSession


def _new_state() -> dict[str, Any]:
    return {
        "role": None,
        "identity": None,
        "exam": None,
    }


def lock() -> threading.RLock:
    """The shared lock; hold it while driving an ExamSession."""
    return _lock


def create_session() -> str:
    """Create a new session and return its id."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def _exam_running(state: dict[str, Any]) -> bool:
    exam = state.get("exam")
    return exam is not None and exam.accepting_input


def get_session(sid: str) -> Optional[dict[str, Any]]:
    """Session data for `sid`, or None if unknown or expired."""
    with _lock:
        if sid not in _sessions:
            return None
        state = _sessions[sid]
        if time.time() - _timestamps[sid] > SESSION_TTL and not _exam_running(state):
            del _sessions[sid]
            del _timestamps[sid]
            return None
        _timestamps[sid] = time.time()  # refresh on access
        return state


def get(sid: str, key: str, default=None):
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def put(sid: str, key: str, value) -> None:
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def reset(sid: str) -> None:
    """
    Log out: drop role, identity and the session's reference to its exam.
    A running exam stays registered under its code and keeps its clock.
    """
    with _lock:
        if sid in _sessions:
            _sessions[sid] = _new_state()
            _timestamps[sid] = time.time()


# ── live exams ──────────────────────────────────────────────────────────────

def live_exam(code: str):
    """The running exam for a student code, or None."""
    with _lock:
        exam = _exams.get(code)
        if exam is None or exam.state.is_locked:
            return None
        return exam


def attach_exam(sid: str, exam) -> None:
    """Register `exam` under its student's code and bind it to session `sid`."""
    with _lock:
        _exams[exam.student.code] = exam
        put(sid, "exam", exam)


def tick_all(seconds: float = 1.0) -> int:
    """Advance the clock of every running exam. Returns how many were advanced."""
    advanced = 0
    with _lock:
        for code, exam in list(_exams.items()):
            if not exam.state.is_locked:
                try:
                    exam.scheduler.advance(seconds)
                except Exception:
                    logger.exception(f"Exam clock failed for code={code}")
                advanced += 1
            if exam.state.is_locked:
                del _exams[code]
    return advanced


def clear() -> None:
    """Forget every session and exam."""
    with _lock:
        for exam in _exams.values():
            exam.scheduler.clear()
        _exams.clear()
        _sessions.clear()
        _timestamps.clear()

def cleanup_expired() -> int:
    """Drop expired sessions. Returns the number removed."""
    now = time.time()
    removed = 0
    with _lock:
        expired = [
            sid for sid, ts in _timestamps.items()
            if now - ts > SESSION_TTL and not _exam_running(_sessions[sid])
        ]
        for sid in expired:
            del _sessions[sid]
            del _timestamps[sid]
            removed += 1
    return removed
