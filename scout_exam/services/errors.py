"""
services/errors.py

Service-layer exceptions. Routes translate them to HTTP status codes;
input validation failures stay plain ValueError.
"""


class CBTError(Exception):
    """Base class for expected, user-facing failures."""


class AuthenticationError(CBTError):
    pass


class NotFoundError(CBTError):
    pass


class ConflictError(CBTError):
    pass
