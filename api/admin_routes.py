"""
api/admin_routes.py — administration dashboard endpoints (/api/admin/...)

Every route requires an admin web session.
"""

import json
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, Response, UploadFile
from pydantic import BaseModel, StrictBool, StrictInt

from api.deps import repos, require_admin, to_http
from scout_exam.models.admin_models import User
from scout_exam.models.question_model import Question
from scout_exam.services import csv_service
from scout_exam.services.admin_service import (
    AlertFilter, ResultFilter, filter_alerts, filter_questions, filter_results, filter_users,
    parse_upper_bound,
)
from scout_exam.services.errors import CBTError
from scout_exam.services.exam_service import grade_answers

import config

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


# ── Pydantic request bodies ──────────────────────────────────────────────────

class CodesBody(BaseModel):
    codes: List[str]


class QuestionBody(BaseModel):
    question: str
    type: Literal["mcq", "truefalse"] = "mcq"
    options: List[str] = []
    correct_answer: Union[StrictBool, StrictInt]
    category: Optional[str] = None
    question_en: Optional[str] = None
    image: Optional[str] = None


class AlertBulkBody(BaseModel):
    ids: List[str]
    action: Literal["review", "clear", "lock"]


class CriteriaEvaluationBody(BaseModel):
    password: str
    scores: Dict[str, int]
    notes: str = ""


class AdminPasswordBody(BaseModel):
    password: str


class ChangePasswordBody(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class AntiCheatBody(BaseModel):
    enabled: bool


# ── helpers ──────────────────────────────────────────────────────────────────

def _csv_response(text: str, filename: str) -> Response:
    return Response(
        content=text.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _read_upload(file: UploadFile) -> bytes:
    data = await file.read()
    if len(data) > config.MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=413, detail="File is too large.")
    if not data:
        raise HTTPException(status_code=422, detail="File is empty.")
    return data


def _decode_csv(data: bytes) -> str:
    try:
        return csv_service.decode_upload(data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _today() -> str:
    return date.today().isoformat()


def _build_question(body: QuestionBody, question_id: str) -> Question:
    try:
        return Question(id=question_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ══════════════════════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════════════════════

@router.get("/users")
async def list_users(request: Request, search: str = "", category: str = "all"):
    users = filter_users(repos(request).users.all(), search, category)
    return {"total": len(users), "users": [u.model_dump() for u in users]}


@router.post("/users")
async def add_user(user: User, request: Request):
    try:
        request.app.state.admin.add_user(user)
    except (CBTError, ValueError) as e:
        raise to_http(e)
    return {"ok": True, "user": user.model_dump()}


@router.put("/users/{code}")
async def update_user(code: str, user: User, request: Request):
    if user.code != code:
        raise HTTPException(status_code=422, detail="User code cannot be changed.")
    try:
        request.app.state.admin.update_user(user)
    except (CBTError, ValueError) as e:
        raise to_http(e)
    return {"ok": True, "user": user.model_dump()}


@router.delete("/users/{code}")
async def delete_user(code: str, request: Request):
    if not request.app.state.admin.delete_users([code]):
        raise HTTPException(status_code=404, detail=f"User {code} not found")
    return {"ok": True}


@router.post("/users/bulk-delete")
async def bulk_delete_users(body: CodesBody, request: Request):
    removed = request.app.state.admin.delete_users(body.codes)
    return {"ok": True, "removed": removed}


@router.post("/users/import")
async def import_users(request: Request, file: UploadFile = File(...), replace: bool = False):
    text = _decode_csv(await _read_upload(file))
    report = request.app.state.admin.import_users(text, replace=replace)
    return {"ok": True, **report.model_dump(), "summary": report.summary()}


@router.get("/users/export")
async def export_users(request: Request):
    return _csv_response(csv_service.export_users(repos(request).users.all()),
                         f"users_{_today()}.csv")


@router.get("/users/template")
async def users_template():
    return _csv_response(csv_service.USERS_TEMPLATE, "users_template.csv")


# ══════════════════════════════════════════════════════════════════════════════
# Questions
# ══════════════════════════════════════════════════════════════════════════════

@router.get("/questions")
async def list_questions(request: Request, search: str = "", category: str = "all",
                         qtype: str = Query("all", alias="type")):
    questions = filter_questions(repos(request).questions.all(), search, category, qtype)
    return {"total": len(questions), "questions": [q.model_dump() for q in questions]}


@router.post("/questions")
async def add_question(body: QuestionBody, request: Request):
    question = _build_question(body, datetime.now().strftime("%Y%m%d%H%M%S%f"))
    try:
        request.app.state.admin.add_question(question)
    except (CBTError, ValueError) as e:
        raise to_http(e)
    return {"ok": True, "question": question.model_dump()}


@router.put("/questions/{question_id}")
async def update_question(question_id: str, body: QuestionBody, request: Request):
    question = _build_question(body, question_id)
    try:
        request.app.state.admin.update_question(question)
    except (CBTError, ValueError) as e:
        raise to_http(e)
    return {"ok": True, "question": question.model_dump()}


@router.delete("/questions/{question_id}")
async def delete_question(question_id: str, request: Request):
    try:
        request.app.state.admin.delete_question(question_id)
    except CBTError as e:
        raise to_http(e)
    return {"ok": True}


@router.post("/questions/import")
async def import_questions(request: Request, file: UploadFile = File(...)):
    text = _decode_csv(await _read_upload(file))
    report = request.app.state.admin.import_questions(text)
    return {"ok": True, **report.model_dump(), "summary": report.summary()}


@router.get("/questions/export")
async def export_questions(request: Request):
    return _csv_response(csv_service.export_questions(repos(request).questions.all()),
                         f"questions_{_today()}.csv")


@router.get("/questions/template")
async def questions_template():
    return _csv_response(csv_service.QUESTIONS_TEMPLATE, "questions_template.csv")


# ══════════════════════════════════════════════════════════════════════════════
# Results
# ══════════════════════════════════════════════════════════════════════════════

def _upper_bound(value: Optional[str]) -> Optional[datetime]:
    try:
        return parse_upper_bound(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid date_to: {value}") from e


def _result_filter(
    search: str = "",
    category: str = "all",
    church: str = "all",
    status: List[str] = Query(default=[]),
    date_from: Optional[datetime] = None,
    date_to: Optional[str] = None,
    min_score: Optional[int] = None,
    has_alerts: bool = False,
) -> ResultFilter:
    return ResultFilter(search=search, category=category, church=church, statuses=status,
                        date_from=date_from, date_to=_upper_bound(date_to), min_score=min_score,
                        has_alerts=has_alerts)


@router.get("/results")
async def list_results(request: Request, f: ResultFilter = Depends(_result_filter)):
    results = filter_results(repos(request).results.all(), f)
    return {"total": len(results), "results": [r.model_dump(mode="json") for r in results]}


@router.get("/results/export")
async def export_results(request: Request, f: ResultFilter = Depends(_result_filter)):
    results = filter_results(repos(request).results.all(), f)
    return _csv_response(csv_service.export_results(results), f"results_{_today()}.csv")


@router.get("/results/{result_id}")
async def get_result(result_id: str, request: Request):
    r = repos(request)
    try:
        result = r.results.get(result_id)
    except CBTError as e:
        raise to_http(e)
    d = result.model_dump(mode="json")
    bank = {q.id: q for q in r.questions.all()}
    asked = [bank[qid] for qid in result.answers if qid in bank]
    d["answer_details"] = grade_answers(asked, result.answers)
    d["alerts"] = [a.model_dump(mode="json") for a in r.alerts.all()
                   if a.user_code == result.exam_code]
    return d


@router.delete("/results/{result_id}")
async def delete_result(result_id: str, request: Request):
    try:
        request.app.state.admin.delete_result(result_id)
    except CBTError as e:
        raise to_http(e)
    return {"ok": True}


@router.post("/results/{result_id}/reset")
async def reset_attempt(result_id: str, request: Request):
    try:
        result = request.app.state.admin.reset_attempt(result_id)
    except CBTError as e:
        raise to_http(e)
    return {"ok": True, "result": result.model_dump(mode="json")}


# ══════════════════════════════════════════════════════════════════════════════
# Alerts
# ══════════════════════════════════════════════════════════════════════════════

def _alert_filter(
    search: str = "",
    category: str = "all",
    church: str = "all",
    alert_type: str = "all",
    status: str = "all",
    severity: str = "all",
    date_from: Optional[datetime] = None,
    date_to: Optional[str] = None,
) -> AlertFilter:
    return AlertFilter(search=search, category=category, church=church, alert_type=alert_type,
                       status=status, severity=severity, date_from=date_from,
                       date_to=_upper_bound(date_to))


@router.get("/alerts")
async def list_alerts(request: Request, f: AlertFilter = Depends(_alert_filter)):
    alerts = filter_alerts(repos(request).alerts.all(), f)
    return {"total": len(alerts), "alerts": [a.model_dump(mode="json") for a in alerts]}


@router.post("/alerts/bulk")
async def bulk_alerts(body: AlertBulkBody, request: Request):
    try:
        changed = request.app.state.admin.bulk_alert_action(body.ids, body.action)
    except ValueError as e:
        raise to_http(e)
    return {"ok": True, "changed": changed}


@router.get("/alerts/export")
async def export_alerts(request: Request, f: AlertFilter = Depends(_alert_filter)):
    alerts = filter_alerts(repos(request).alerts.all(), f)
    return _csv_response(csv_service.export_alerts(alerts), f"alerts_{_today()}.csv")


@router.delete("/alerts/{alert_id}")
async def delete_alert(alert_id: str, request: Request):
    try:
        request.app.state.admin.delete_alert(alert_id)
    except CBTError as e:
        raise to_http(e)
    return {"ok": True}


# ══════════════════════════════════════════════════════════════════════════════
# Leader evaluations
# ══════════════════════════════════════════════════════════════════════════════

@router.get("/evaluations")
async def list_evaluations(request: Request, category: str = "all", status: str = "all"):
    evaluation = request.app.state.evaluation
    items = evaluation.pending(category, status)
    return {
        "counts": evaluation.counts(),
        "criteria": [{"id": c, "name": n, "weight": w} for c, n, w in config.EVALUATION_CRITERIA],
        "evaluations": [r.model_dump(mode="json") for r in items],
    }


@router.post("/evaluations/{result_id}")
async def submit_evaluation(result_id: str, body: CriteriaEvaluationBody, request: Request):
    try:
        result = request.app.state.evaluation.submit_criteria(
            result_id, body.scores, body.password, body.notes
        )
    except (CBTError, ValueError) as e:
        raise to_http(e)
    return {"ok": True, "final_score": result.final_score, "result": result.model_dump(mode="json")}


# ══════════════════════════════════════════════════════════════════════════════
# System
# ══════════════════════════════════════════════════════════════════════════════

@router.get("/system/stats")
async def system_stats(request: Request):
    admin = request.app.state.admin
    return {**admin.stats().model_dump(mode="json"), "anti_cheat_enabled": admin.anti_cheat_enabled()}


@router.get("/system/logs")
async def system_logs(request: Request):
    return {"logs": [e.model_dump(mode="json") for e in repos(request).logs.all()]}


@router.post("/system/reset-results")
async def reset_results(body: AdminPasswordBody, request: Request):
    try:
        removed = request.app.state.admin.reset_results(body.password)
    except CBTError as e:
        raise to_http(e)
    return {"ok": True, "removed": removed}


@router.post("/system/reset-all")
async def reset_all(body: AdminPasswordBody, request: Request):
    try:
        request.app.state.admin.reset_all(body.password)
    except CBTError as e:
        raise to_http(e)
    return {"ok": True}


@router.post("/system/password")
async def change_password(body: ChangePasswordBody, request: Request):
    try:
        request.app.state.admin.change_password(
            body.current_password, body.new_password, body.confirm_password
        )
    except (CBTError, ValueError) as e:
        raise to_http(e)
    return {"ok": True}


@router.post("/system/anti-cheat")
async def set_anti_cheat(body: AntiCheatBody, request: Request):
    request.app.state.admin.set_anti_cheat(body.enabled)
    return {"ok": True, "enabled": body.enabled}


@router.get("/system/backup")
async def backup(request: Request):
    doc = request.app.state.admin.backup()
    return Response(
        content=json.dumps(doc, ensure_ascii=False, indent=2).encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="cbt_backup_{_today()}.json"'},
    )


@router.post("/system/restore")
async def restore(request: Request, file: UploadFile = File(...)):
    data = await _read_upload(file)
    try:
        doc = json.loads(data.decode("utf-8-sig"))
        request.app.state.admin.restore(doc)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise HTTPException(status_code=422, detail="Backup must be a UTF-8 JSON file.")
    except ValueError as e:
        raise to_http(e)
    return {"ok": True}
