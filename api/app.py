"""
api/app.py — FastAPI app instance + session middleware + static files
"""

import logging
import os
import threading
import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

from config import DATA_FILE, SESSION_TTL, STATIC_DIR
from api.admin_routes import router as admin_router
from api.routes import router
import api.session as session
from scout_exam.services.admin_service import AdminService
from scout_exam.services.auth_service import AuthService
from scout_exam.services.evaluation_service import EvaluationService
from scout_exam.services.storage import DataStore, Repositories

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


def create_app(store: Optional[DataStore] = None, start_background: bool = True) -> FastAPI:
    app = FastAPI(title="Scout Exam CBT", docs_url=None, redoc_url=None)

    repos = Repositories(store if store is not None else DataStore(DATA_FILE))
    auth = AuthService(repos)
    app.state.repos = repos
    app.state.auth = auth
    app.state.admin = AdminService(repos, auth)
    app.state.evaluation = EvaluationService(repos)
    session.clear()

    # CORS (tablets and phones on the local network)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # session id from the cookie, or a fresh one
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=SESSION_TTL,
        )
        return response

    app.include_router(router)
    app.include_router(admin_router)

    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    if start_background:
        _start_background_threads()

    return app


# ── background threads ───────────────────────────────────────────────────────

def _cleanup_loop():
    # every 5 minutes
    while True:
        time.sleep(300)
        removed = session.cleanup_expired()
        if removed:
            logger.info(f"Removed {removed} expired session(s)")


def _tick_loop():
    # one-second exam clock: countdowns and the auto-submit grace period
    while True:
        time.sleep(1)
        try:
            session.tick_all(1.0)
        except Exception:
            logger.exception("Exam tick failed")


def _start_background_threads() -> None:
    for target in (_cleanup_loop, _tick_loop):
        threading.Thread(target=target, daemon=True).start()
