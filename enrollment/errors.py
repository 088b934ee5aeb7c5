# enrollment/errors.py
from __future__ import annotations
from typing import Optional


class EnrollmentError(Exception):
    """Base class for every failure raised by the enrollment subsystem."""


class ApiError(EnrollmentError):
    """The admin API rejected a request or could not be reached.

    ``status`` is ``None`` for transport failures (DNS, refused, timeout).
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    @property
    def is_transport(self) -> bool:
        return self.status is None

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"HTTP {self.status}: {self.message}"


class DisabledAccountError(ApiError):
    """The target account is disabled; retrying will not help."""


class KeyGenerationError(EnrollmentError):
    pass


class SessionStateError(EnrollmentError):
    """A transition was requested from a step that does not define it."""
