"""
models/admin_models.py

Records managed from the administration dashboard:
registered users, integrity alerts and the system activity log.
"""

import uuid
from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator


def _now() -> datetime:
    return datetime.now().astimezone()


def _new_id() -> str:
    return uuid.uuid4().hex


class User(BaseModel):
    code: str = Field(..., min_length=1, description="One-time exam code (login)")
    name: str = Field(..., min_length=1)
    church: str = ""
    category: str = Field(..., min_length=1)
    password: str = ""
    email: str = ""
    status: Literal["active", "inactive"] = "active"

    @field_validator("code", "name", "category")
    @classmethod
    def strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


AlertStatus = Literal["active", "reviewed", "cleared"]
AlertSeverity = Literal["low", "medium", "high"]


class Alert(BaseModel):
    """One integrity event reported during an exam attempt."""

    id: str = Field(default_factory=_new_id)
    user_code: str
    user_name: str = ""
    church: str = ""
    category: str = ""
    exam_name: str = ""
    alert_type: str = "tab_switch"
    timestamp: datetime = Field(default_factory=_now)
    alert_count: int = 1
    status: AlertStatus = "active"
    severity: AlertSeverity = "low"
    details: str = ""


class SystemLog(BaseModel):
    id: str = Field(default_factory=_new_id)
    action: str
    timestamp: datetime = Field(default_factory=_now)
    admin_user: str = ""
    details: str = ""
    status: Literal["success", "error", "warning"] = "success"


class SystemStats(BaseModel):
    total_users: int = 0
    total_questions: int = 0
    total_completed_attempts: int = 0
    total_alerts_logged: int = 0
    category_counts: List[dict] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_now)
