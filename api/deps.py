"""
api/deps.py — helpers shared by the student and admin routers
"""

from fastapi import HTTPException, Request

import api.session as session
from scout_exam.models.session_state import StudentIdentity
from scout_exam.services.errors import AuthenticationError, ConflictError, NotFoundError
from scout_exam.services.storage import Repositories


def sid(request: Request) -> str:
    return request.state.session_id


def repos(request: Request) -> Repositories:
    return request.app.state.repos


def require_student(request: Request) -> StudentIdentity:
    if session.get(sid(request), "role") != "student":
        raise HTTPException(status_code=401, detail="Please log in with your exam code.")
    return session.get(sid(request), "identity")


def require_admin(request: Request) -> None:
    if session.get(sid(request), "role") != "admin":
        raise HTTPException(status_code=403, detail="Administrator access required.")


def to_http(e: Exception) -> HTTPException:
    """Service exception → HTTPException."""
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail="Unexpected error.")
