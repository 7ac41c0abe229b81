"""
api/routes.py — student-facing FastAPI endpoints

login → start-exam → question / save-answer / navigate / visibility-lost
→ submit-exam (or timer / integrity auto-submit) → results → post-evaluation
"""

from typing import Literal, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictBool, StrictInt

import api.session as session
from api.deps import repos, require_student, sid, to_http
from scout_exam.models.question_model import Question
from scout_exam.models.result_model import ExamResult
from scout_exam.models.session_state import SubmitReason
from scout_exam.services.errors import CBTError
from scout_exam.services.exam_service import (
    calculate_category_scores,
    get_incorrect_questions,
    is_passed,
)
from scout_exam.services.exam_session import NO_QUESTIONS_MESSAGE, ExamSession

import config

router = APIRouter()


# ── Pydantic request bodies ──────────────────────────────────────────────────

class LoginBody(BaseModel):
    code: str
    password: str


class SaveAnswerBody(BaseModel):
    question_id: str
    answer: Union[StrictBool, StrictInt]


class NavigateBody(BaseModel):
    direction: Optional[Literal["next", "previous"]] = None
    index: Optional[int] = None


class LeaderPasswordBody(BaseModel):
    password: str


class LeaderScoreBody(BaseModel):
    password: str
    score: int = Field(..., ge=0, le=100)


# ── helpers ──────────────────────────────────────────────────────────────────

def _question_to_dict(q: Question) -> dict:
    """Student view of a question. The correct answer is never sent."""
    return {
        "id": q.id,
        "question": q.question,
        "question_en": q.question_en,
        "type": q.type,
        "options": q.options,
        "category": q.category,
        "image": q.image,
    }


def _result_to_dict(r: ExamResult) -> dict:
    return {
        "exam_code": r.exam_code,
        "user_name": r.user_name,
        "user_category": r.user_category,
        "score": r.score,
        "correct_answers": r.correct_answers,
        "total_questions": r.total_questions,
        "tab_switches": r.tab_switches,
        "submit_reason": r.submit_reason.value,
        "submitted_at": r.submitted_at.isoformat(),
        "status": r.status,
        "leader_score": r.leader_score,
        "final_score": r.effective_score,
        "passed": is_passed(r.effective_score),
    }


def _exam(request: Request) -> ExamSession:
    require_student(request)
    exam: Optional[ExamSession] = session.get(sid(request), "exam")
    if exam is None:
        raise HTTPException(status_code=404, detail="No exam session.")
    return exam


def _new_exam(request: Request) -> ExamSession:
    identity = session.get(sid(request), "identity")
    r = repos(request)
    admin = request.app.state.admin

    def on_locked(result: ExamResult) -> None:
        r.users.mark_used(result.exam_code)

    return ExamSession(
        questions=r.questions.for_category(identity.category),
        student=identity,
        result_sink=r.results,
        duration=config.EXAM_DURATION_SECONDS,
        tab_switch_limit=config.TAB_SWITCH_LIMIT,
        grace_seconds=config.AUTO_SUBMIT_GRACE_SECONDS,
        enforce_integrity=admin.anti_cheat_enabled(),
        on_violation=lambda student, count: admin.record_violation(student, count),
        on_locked=on_locked,
    )


# ── auth ─────────────────────────────────────────────────────────────────────

@router.post("/api/login")
async def login(body: LoginBody, request: Request):
    try:
        role, identity = request.app.state.auth.login(body.code, body.password)
    except CBTError as e:
        raise to_http(e)
    with session.lock():
        session.reset(sid(request))
        session.put(sid(request), "role", role)
        session.put(sid(request), "identity", identity)
        exam = session.live_exam(identity.code) if role == "student" else None
        if exam is not None:
            session.attach_exam(sid(request), exam)
    return {
        "ok": True,
        "role": role,
        "exam_running": exam is not None,
        "code": identity.code,
        "name": identity.name,
        "category": identity.category,
    }


@router.post("/api/logout")
async def logout(request: Request):
    session.reset(sid(request))
    return {"ok": True}


@router.get("/api/me")
async def me(request: Request):
    role = session.get(sid(request), "role")
    identity = session.get(sid(request), "identity")
    if role is None:
        return {"logged_in": False}
    return {"logged_in": True, "role": role, **identity.model_dump()}


# ── exam ─────────────────────────────────────────────────────────────────────

@router.post("/api/start-exam")
async def start_exam(request: Request):
    identity = require_student(request)
    with session.lock():
        exam: Optional[ExamSession] = session.get(sid(request), "exam")
        if exam is None:
            exam = session.live_exam(identity.code)
            if exam is not None:
                session.attach_exam(sid(request), exam)
        if exam is not None:
            if exam.state.is_locked:
                raise HTTPException(status_code=409, detail="This exam has already been submitted.")
            return {"ok": True, "resumed": True, **exam.snapshot()}

        exam = _new_exam(request)
        if not exam.start():
            return JSONResponse(
                status_code=409,
                content={"ok": False, "reason": "no_questions", "message": NO_QUESTIONS_MESSAGE},
            )
        session.attach_exam(sid(request), exam)
        return {"ok": True, "resumed": False, **exam.snapshot()}


@router.get("/api/exam-state")
async def get_exam_state(request: Request):
    exam = _exam(request)
    with session.lock():
        return exam.snapshot()


@router.get("/api/question/{index}")
async def get_question(index: int, request: Request):
    exam = _exam(request)
    with session.lock():
        if not (0 <= index < len(exam.questions)):
            raise HTTPException(status_code=404, detail="Question not found.")
        q = exam.questions[index]
        d = _question_to_dict(q)
        d.update({
            "saved_answer": exam.state.user_answers.get(q.id),
            "is_answered": exam.is_answered(q.id),
            "index": index,
            "total": len(exam.questions),
            "is_last": index == len(exam.questions) - 1,
        })
        return d


@router.post("/api/save-answer")
async def save_answer(body: SaveAnswerBody, request: Request):
    exam = _exam(request)
    with session.lock():
        if not exam.accepting_input:
            raise HTTPException(status_code=400, detail="This exam has already been submitted.")
        try:
            saved = exam.select_answer(body.question_id, body.answer)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        if not saved:
            raise HTTPException(status_code=404, detail="Question not found.")
        return {"ok": True, "answered_count": exam.answered_count}


@router.post("/api/navigate")
async def navigate(body: NavigateBody, request: Request):
    exam = _exam(request)
    with session.lock():
        if not exam.accepting_input:
            raise HTTPException(status_code=400, detail="This exam has already been submitted.")
        if body.direction == "next":
            idx = exam.go_next()
        elif body.direction == "previous":
            idx = exam.go_previous()
        elif body.index is not None:
            idx = exam.go_to(body.index)
        else:
            raise HTTPException(status_code=422, detail="Give a direction or an index.")
        return {"ok": True, "index": idx, "is_last": exam.is_last_question}


@router.post("/api/visibility-lost")
async def visibility_lost(request: Request):
    exam = _exam(request)
    with session.lock():
        status = exam.visibility_lost()
        return {"ok": True, "phase": exam.phase.value, **status}


@router.post("/api/submit-exam")
async def submit_exam(request: Request):
    exam = _exam(request)
    with session.lock():
        try:
            result = exam.submit(SubmitReason.MANUAL)
        except OSError:
            raise HTTPException(status_code=503, detail="Could not save your answers. Please try again.")
        if result is None:
            raise HTTPException(status_code=400, detail="The exam has not started.")
        return {"ok": True, **_result_to_dict(result)}


@router.get("/api/results")
async def get_results(request: Request):
    identity = require_student(request)
    result = repos(request).results.find_by_code(identity.code)
    if result is None:
        raise HTTPException(status_code=404, detail="No result yet.")
    d = _result_to_dict(result)
    exam: Optional[ExamSession] = session.get(sid(request), "exam")
    if exam is not None and exam.state.is_locked:
        d["category_scores"] = calculate_category_scores(exam.questions, result.answers)
        d["incorrect_questions"] = [
            _question_to_dict(q) for q in get_incorrect_questions(exam.questions, result.answers)
        ]
    return d


# ── post-exam evaluation ─────────────────────────────────────────────────────

@router.post("/api/post-evaluation/verify")
async def verify_leader(body: LeaderPasswordBody, request: Request):
    require_student(request)
    if not request.app.state.evaluation.verify_leader(body.password):
        raise HTTPException(status_code=401, detail="Incorrect leader password.")
    return {"ok": True}


@router.post("/api/post-evaluation")
async def save_evaluation(body: LeaderScoreBody, request: Request):
    identity = require_student(request)
    try:
        result = request.app.state.evaluation.apply_leader_score(
            identity.code, body.score, body.password
        )
    except (CBTError, ValueError) as e:
        raise to_http(e)
    # evaluation closes the attempt for good
    session.reset(sid(request))
    return {"ok": True, **_result_to_dict(result)}
