"""Lesson use cases (Clean Architecture boundary).

Why:
    Encapsulates validation and the permission gate for lesson create/read/
    update/delete and date resolution, so the web adapter stays thin and the
    rules can be unit-tested without FastAPI or a database.

Permissions:
    - Read requires at least ``read`` on the lesson.
    - Update and delete require ``read_write``. The check runs after the
      lookup and before any mutation; repositories re-check inside their
      transaction.
    - Unknown lessons are "not found" (``None``) for read/update and a silent
      no-op for delete.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, List, Optional, Protocol
import logging

from ..errors import PermissionDenied, ValidationError
from ..models import Lesson
from ..permissions import PermissionLevel, require_read, require_write
from ..recurrence import parse_recurrences

logger = logging.getLogger("lessons.scheduling")

TITLE_MAX_LENGTH = 200

_UNSET = object()


class LessonsRepoProtocol(Protocol):
    def create_lesson(
        self,
        *,
        title: str,
        description: Optional[str],
        singles: Iterable[Any],
        daily: Iterable[Any],
        weekly: Iterable[Any],
        monthly: Iterable[Any],
        owner_id: str,
    ) -> Lesson:
        ...

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        ...

    def update_lesson(self, lesson_id: str, *, actor_id: Optional[str] = None, **changes: Any) -> Optional[Lesson]:
        ...

    def delete_lesson(self, lesson_id: str, *, actor_id: Optional[str] = None) -> None:
        ...

    def lesson_exists(self, lesson_id: str) -> bool:
        ...

    def permission_level(self, account_id: str, lesson_id: str) -> PermissionLevel:
        ...

    def lessons_for_date(self, day: date, account_id: str) -> List[Lesson]:
        ...


def _normalize_title(value: object) -> str:
    if value is None or not isinstance(value, str):
        raise ValidationError("invalid_title")
    trimmed = value.strip()
    if not trimmed or len(trimmed) > TITLE_MAX_LENGTH or "\x00" in trimmed:
        raise ValidationError("invalid_title")
    return trimmed


def _normalize_description(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("invalid_description")
    trimmed = value.strip()
    if "\x00" in trimmed:
        raise ValidationError("invalid_description")
    return trimmed or None


def _normalize_account(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PermissionDenied("forbidden")
    return value


@dataclass
class LessonsService:
    """Use cases for lessons (framework-independent)."""

    repo: LessonsRepoProtocol

    def _authorize(self, account: str, lesson_id: str, require: Callable[[PermissionLevel], None]) -> bool:
        """Apply `require` to the caller's level; False when the lesson does not exist."""
        level = self.repo.permission_level(account, lesson_id)
        if level is PermissionLevel.NONE and not self.repo.lesson_exists(lesson_id):
            return False
        require(level)
        return True

    def create_lesson(
        self,
        owner_id: str,
        *,
        title: object,
        description: object = None,
        singles: object = (),
        daily: object = (),
        weekly: object = (),
        monthly: object = (),
    ) -> Lesson:
        owner = _normalize_account(owner_id)
        lesson = self.repo.create_lesson(
            title=_normalize_title(title),
            description=_normalize_description(description),
            singles=parse_recurrences("singles", singles),
            daily=parse_recurrences("daily", daily),
            weekly=parse_recurrences("weekly", weekly),
            monthly=parse_recurrences("monthly", monthly),
            owner_id=owner,
        )
        logger.info("Lesson created id=%s", lesson.id)
        return lesson

    def get_lesson(self, account_id: str, lesson_id: str) -> Optional[Lesson]:
        account = _normalize_account(account_id)
        if not self._authorize(account, lesson_id, require_read):
            return None
        return self.repo.get_lesson(lesson_id)

    def update_lesson(
        self,
        account_id: str,
        lesson_id: str,
        *,
        title: object = _UNSET,
        description: object = _UNSET,
        singles: object = _UNSET,
        daily: object = _UNSET,
        weekly: object = _UNSET,
        monthly: object = _UNSET,
    ) -> Optional[Lesson]:
        account = _normalize_account(account_id)
        changes: dict[str, Any] = {}
        if title is not _UNSET:
            changes["title"] = _normalize_title(title)
        if description is not _UNSET:
            changes["description"] = _normalize_description(description)
        for name, value in (("singles", singles), ("daily", daily), ("weekly", weekly), ("monthly", monthly)):
            if value is not _UNSET:
                changes[name] = parse_recurrences(name, value)

        if not self._authorize(account, lesson_id, require_write):
            return None
        return self.repo.update_lesson(lesson_id, actor_id=account, **changes)

    def delete_lesson(self, account_id: str, lesson_id: str) -> None:
        account = _normalize_account(account_id)
        if not self._authorize(account, lesson_id, require_write):
            return
        self.repo.delete_lesson(lesson_id, actor_id=account)
        logger.info("Lesson deleted id=%s", lesson_id)

    def lessons_for_date(self, account_id: str, day: date) -> List[Lesson]:
        account = _normalize_account(account_id)
        if not isinstance(day, date):
            raise ValidationError("invalid_date")
        return self.repo.lessons_for_date(day, account)


__all__ = ["LessonsService", "LessonsRepoProtocol", "TITLE_MAX_LENGTH", "_UNSET"]
