"""
services/auth_service.py

Login for administrators and students.
Student exam codes are one-time: once an attempt is submitted the code is
recorded as used and refused afterwards (until an admin resets the attempt).
"""

import hmac
import logging
from typing import Tuple

from scout_exam.models.session_state import StudentIdentity
from scout_exam.services.errors import AuthenticationError
from scout_exam.services.storage import Repositories

import config

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class AuthService:
    def __init__(self, repos: Repositories):
        self.repos = repos

    def admin_code(self) -> str:
        return self.repos.settings.get("admin_code", config.ADMIN_CODE)

    def admin_password(self) -> str:
        return self.repos.settings.get("admin_password", config.ADMIN_PASSWORD)

    def check_admin_password(self, password: str) -> bool:
        return _same(password or "", self.admin_password())

    def login(self, code: str, password: str) -> Tuple[str, StudentIdentity]:
        """
        Returns (role, identity).

        Raises:
            AuthenticationError: unknown code, wrong password, inactive
                                 account or an exam code that was already used.
        """
        code = (code or "").strip()
        if not code or not password:
            raise AuthenticationError("Code and password are required.")

        if _same(code, self.admin_code()) and self.check_admin_password(password):
            logger.info("Admin logged in")
            return ROLE_ADMIN, StudentIdentity(code=code, name="Administrator")

        if self.repos.users.is_used(code):
            logger.warning(f"Login refused, code already used: {code}")
            raise AuthenticationError("This code has already been used and cannot be reused.")

        user = self.repos.users.find(code)
        if user is None or not _same(password, user.password):
            logger.warning(f"Login failed for code {code}")
            raise AuthenticationError("Invalid code or password.")
        if user.status != "active":
            raise AuthenticationError("This account is inactive.")

        logger.info(f"Student logged in: {code}")
        return ROLE_STUDENT, StudentIdentity(
            code=user.code, name=user.name, category=user.category, church=user.church
        )

    def change_admin_password(self, current: str, new: str, confirm: str) -> None:
        if not self.check_admin_password(current):
            raise AuthenticationError("Current admin password is incorrect.")
        if len(new) < config.MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"New password must be at least {config.MIN_PASSWORD_LENGTH} characters."
            )
        if new != confirm:
            raise ValueError("Password confirmation does not match.")
        self.repos.settings.set("admin_password", new)
        logger.info("Admin password changed")
