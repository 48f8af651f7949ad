"""
In-memory lesson repository (tests and offline development).

Mirrors ``DBLessonRepo`` call for call. Each operation works on a copy of the
state and swaps it in under a lock only after every step succeeded, which
gives the same all-or-nothing behavior as a database transaction.
"""
from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4
import threading

from .errors import PermissionDenied, StorageError
from .models import Lesson
from .permissions import PermissionLevel, PermissionType, can_read, can_write
from .recurrence_stores import RECURRENCE_STORES

_UNSET = object()


@dataclass
class _LessonRow:
    title: str
    description: Optional[str]
    collections: Dict[str, list]
    teachers: set = field(default_factory=set)


@dataclass
class _State:
    lessons: Dict[str, _LessonRow] = field(default_factory=dict)
    grants: Dict[Tuple[str, str], PermissionType] = field(default_factory=dict)


class InMemoryLessonRepo:
    def __init__(self) -> None:
        self._state = _State()
        self._lock = threading.Lock()

    def _snapshot(self, lesson_id: str) -> Optional[Lesson]:
        row = self._state.lessons.get(lesson_id)
        if row is None:
            return None
        return Lesson(
            id=lesson_id,
            title=row.title,
            description=row.description,
            teachers=list(row.teachers),
            **{name: list(items) for name, items in row.collections.items()},
        )

    def _level(self, state: _State, account_id: str, lesson_id: str) -> PermissionLevel:
        return PermissionLevel.from_grant(state.grants.get((lesson_id, account_id)))

    def create_lesson(
        self,
        *,
        title: str,
        description: Optional[str],
        singles,
        daily,
        weekly,
        monthly,
        owner_id: str,
    ) -> Lesson:
        lesson_id = str(uuid4())
        row = _LessonRow(
            title=title,
            description=description,
            collections={"singles": list(singles), "daily": list(daily), "weekly": list(weekly), "monthly": list(monthly)},
        )
        with self._lock:
            state = deepcopy(self._state)
            state.lessons[lesson_id] = row
            state.grants[(lesson_id, owner_id)] = PermissionType.READ_WRITE
            self._state = state
            return self._snapshot(lesson_id)  # type: ignore[return-value]

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        with self._lock:
            return self._snapshot(lesson_id)

    def update_lesson(
        self,
        lesson_id: str,
        *,
        actor_id: Optional[str] = None,
        title: Any = _UNSET,
        description: Any = _UNSET,
        singles: Any = _UNSET,
        daily: Any = _UNSET,
        weekly: Any = _UNSET,
        monthly: Any = _UNSET,
    ) -> Optional[Lesson]:
        with self._lock:
            if lesson_id not in self._state.lessons:
                return None
            if actor_id is not None and not can_write(self._level(self._state, actor_id, lesson_id)):
                raise PermissionDenied("forbidden")
            state = deepcopy(self._state)
            row = state.lessons[lesson_id]
            if title is not _UNSET:
                row.title = title
            if description is not _UNSET:
                row.description = description
            for name, rows in (("singles", singles), ("daily", daily), ("weekly", weekly), ("monthly", monthly)):
                if rows is not _UNSET:
                    row.collections[name] = list(rows)
            self._state = state
            return self._snapshot(lesson_id)

    def delete_lesson(self, lesson_id: str, *, actor_id: Optional[str] = None) -> None:
        with self._lock:
            if lesson_id not in self._state.lessons:
                return
            if actor_id is not None and not can_write(self._level(self._state, actor_id, lesson_id)):
                raise PermissionDenied("forbidden")
            state = deepcopy(self._state)
            state.lessons.pop(lesson_id, None)
            state.grants = {key: value for key, value in state.grants.items() if key[0] != lesson_id}
            self._state = state

    def lesson_exists(self, lesson_id: str) -> bool:
        with self._lock:
            return lesson_id in self._state.lessons

    def permission_level(self, account_id: str, lesson_id: str) -> PermissionLevel:
        with self._lock:
            return self._level(self._state, account_id, lesson_id)

    def grant_permission(self, lesson_id: str, account_id: str, permission_type: PermissionType) -> None:
        with self._lock:
            if lesson_id not in self._state.lessons:
                # Same outcome as the FK violation in the DB-backed repo.
                raise StorageError("storage_unavailable")
            self._state.grants[(lesson_id, account_id)] = permission_type

    def add_teacher(self, lesson_id: str, teacher_id: str) -> None:
        with self._lock:
            self._state.lessons[lesson_id].teachers.add(teacher_id)

    def lessons_for_date(self, day: date, account_id: str) -> List[Lesson]:
        with self._lock:
            out: List[Lesson] = []
            for lesson_id, row in self._state.lessons.items():
                occurs = any(
                    store.matches_date(item, day)
                    for store in RECURRENCE_STORES
                    for item in row.collections.get(store.field, [])
                )
                if occurs and can_read(self._level(self._state, account_id, lesson_id)):
                    out.append(self._snapshot(lesson_id))  # type: ignore[arg-type]
            return out


__all__ = ["InMemoryLessonRepo"]
