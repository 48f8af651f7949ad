"""
Error taxonomy for the scheduling bounded context.

Why:
    The web adapter maps each failure class to exactly one HTTP status. Keeping
    the classes here (framework-free) lets services and repositories raise them
    without importing FastAPI.

Notes:
    - "Not found" is not an exception: repositories return ``None``/``False``.
    - Every error carries a short machine-readable ``code`` (``invalid_every``,
      ``forbidden`` ...) that the adapter forwards as ``detail``.
"""
from __future__ import annotations


class SchedulingError(Exception):
    """Base class for all scheduling failures."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class ValidationError(SchedulingError, ValueError):
    """Malformed lesson or recurrence input (e.g. ``every < 1``)."""


class PermissionDenied(SchedulingError):
    """Caller lacks the access level the operation requires."""

    def __init__(self, code: str = "forbidden"):
        super().__init__(code)


class StorageError(SchedulingError):
    """The backing store failed; the enclosing transaction was rolled back."""

    def __init__(self, code: str = "storage_unavailable"):
        super().__init__(code)


__all__ = ["SchedulingError", "ValidationError", "PermissionDenied", "StorageError"]
