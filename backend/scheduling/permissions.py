"""
Permission model for lessons: grant rows and the caller's effective level.

Why:
    Every read and write on a lesson is gated by the account-to-lesson grant.
    The grant table stores ``'r'`` or ``'rw'``; this module turns a row (or its
    absence) into an ordered level so callers can ask "at least read?" or
    "at least read-write?" without string comparisons.

Permissions:
    ``READ_WRITE`` implies ``READ``. No grant row means ``NONE``.
"""
from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Optional

from .errors import PermissionDenied


class PermissionType(str, Enum):
    """Stored grant kinds (values match the ``lesson_permissions`` column)."""

    READ = "r"
    READ_WRITE = "rw"


class PermissionLevel(IntEnum):
    NONE = 0
    READ = 1
    READ_WRITE = 2

    @classmethod
    def from_grant(cls, permission_type: Optional[object]) -> "PermissionLevel":
        if permission_type is None:
            return cls.NONE
        value = getattr(permission_type, "value", permission_type)
        if value == PermissionType.READ_WRITE.value:
            return cls.READ_WRITE
        if value == PermissionType.READ.value:
            return cls.READ
        return cls.NONE


def can_read(level: PermissionLevel) -> bool:
    return level >= PermissionLevel.READ


def can_write(level: PermissionLevel) -> bool:
    return level >= PermissionLevel.READ_WRITE


def require_read(level: PermissionLevel) -> None:
    if not can_read(level):
        raise PermissionDenied("forbidden")


def require_write(level: PermissionLevel) -> None:
    if not can_write(level):
        raise PermissionDenied("forbidden")


# --- SQL helpers (run on the caller's cursor/transaction) ----------------------

def level_for(cur: Any, account_id: str, lesson_id: str) -> PermissionLevel:
    """Return the account's level for one lesson using an open cursor."""
    cur.execute(
        "select permission_type from lesson_permissions where lesson_id = %s and account_id = %s",
        (lesson_id, account_id),
    )
    row = cur.fetchone()
    return PermissionLevel.from_grant(row[0] if row else None)


def grant(cur: Any, lesson_id: str, account_id: str, permission_type: PermissionType) -> None:
    """Upsert a grant; exactly one row may exist per (lesson, account)."""
    cur.execute(
        """
        insert into lesson_permissions (lesson_id, account_id, permission_type)
        values (%s, %s, %s)
        on conflict (lesson_id, account_id) do update set permission_type = excluded.permission_type
        """,
        (lesson_id, account_id, permission_type.value),
    )


# Lessons the account may read; used to filter occurrence resolution.
READABLE_LESSONS_SQL = (
    "select lesson_id from lesson_permissions "
    "where account_id = %s and permission_type in ('r', 'rw')"
)


__all__ = [
    "PermissionType",
    "PermissionLevel",
    "can_read",
    "can_write",
    "require_read",
    "require_write",
    "level_for",
    "grant",
    "READABLE_LESSONS_SQL",
]
