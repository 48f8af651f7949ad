"""
Postgres-backed repository for the Lesson aggregate.

Security:
- Mutating calls accept ``actor_id`` and re-check the caller's grant inside the
  same transaction that performs the write, so a grant revoked between the
  service check and the write cannot slip through.

Design:
- One transaction per logical operation via the injected ``Database`` handle.
- Recurrence collections are written through ``RECURRENCE_STORES``; the
  repository never branches on the recurrence kind.
- Update semantics: ``_UNSET`` leaves a field untouched; any provided
  collection (including ``[]``) replaces that kind entirely.
- Concurrent updates of one lesson are last-writer-wins per replaced
  collection; there is no version column.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from .db import Database
from .errors import PermissionDenied
from .models import Lesson
from .permissions import (
    READABLE_LESSONS_SQL,
    PermissionLevel,
    PermissionType,
    can_write,
    grant,
    level_for,
)
from .recurrence_stores import RECURRENCE_STORES, STORES_BY_FIELD, lesson_ids_for_date_sql

logger = logging.getLogger("lessons.scheduling")

_UNSET = object()


def _teachers_of_lesson(cur: Any, lesson_id: str) -> List[str]:
    cur.execute("select teacher_id from teacher_lessons where lesson_id = %s", (lesson_id,))
    return [str(row[0]) for row in cur.fetchall() or []]


def _load_lesson(cur: Any, lesson_id: str) -> Optional[Lesson]:
    cur.execute("select id::text, title, description from lessons where id = %s", (lesson_id,))
    base = cur.fetchone()
    if not base:
        return None
    collections = {store.field: store.list_for_lesson(cur, lesson_id) for store in RECURRENCE_STORES}
    return Lesson(
        id=base[0],
        title=base[1],
        description=base[2],
        teachers=_teachers_of_lesson(cur, lesson_id),
        **collections,
    )


def _load_lessons(cur: Any, lesson_ids: Sequence[str]) -> List[Lesson]:
    """Hydrate many lessons with one query per table (same result as per-id loads)."""
    if not lesson_ids:
        return []
    ids = list(lesson_ids)
    cur.execute(
        "select id::text, title, description from lessons where id = any(%s::uuid[]) order by id",
        (ids,),
    )
    bases = cur.fetchall() or []
    cur.execute(
        "select lesson_id::text, teacher_id from teacher_lessons where lesson_id = any(%s::uuid[])",
        (ids,),
    )
    teachers: Dict[str, List[str]] = {}
    for lesson_id, teacher_id in cur.fetchall() or []:
        teachers.setdefault(str(lesson_id), []).append(str(teacher_id))
    by_field = {store.field: store.list_for_lessons(cur, ids) for store in RECURRENCE_STORES}
    return [
        Lesson(
            id=lesson_id,
            title=title,
            description=description,
            teachers=teachers.get(lesson_id, []),
            **{name: rows.get(lesson_id, []) for name, rows in by_field.items()},
        )
        for lesson_id, title, description in bases
    ]


class DBLessonRepo:
    """Persistence adapter for lessons, recurrences, teacher links and grants."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # --- Aggregate ---------------------------------------------------------------
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
        collections = {"singles": list(singles), "daily": list(daily), "weekly": list(weekly), "monthly": list(monthly)}
        with self._db.transaction() as cur:
            cur.execute(
                "insert into lessons (title, description) values (%s, %s) returning id::text",
                (title, description),
            )
            lesson_id = str(cur.fetchone()[0])
            for store in RECURRENCE_STORES:
                store.insert_batch(cur, collections[store.field], lesson_id)
            grant(cur, lesson_id, owner_id, PermissionType.READ_WRITE)
        return Lesson(id=lesson_id, title=title, description=description, teachers=[], **collections)

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        with self._db.transaction(snapshot=True) as cur:
            return _load_lesson(cur, lesson_id)

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
        """Apply a partial update; return the updated lesson or None when unknown."""
        collections = {"singles": singles, "daily": daily, "weekly": weekly, "monthly": monthly}
        with self._db.transaction() as cur:
            cur.execute("select id from lessons where id = %s for update", (lesson_id,))
            if not cur.fetchone():
                return None
            if actor_id is not None and not can_write(level_for(cur, actor_id, lesson_id)):
                raise PermissionDenied("forbidden")

            setters: list[str] = []
            params: list = []
            if title is not _UNSET:
                setters.append("title = %s")
                params.append(title)
            if description is not _UNSET:
                setters.append("description = %s")
                params.append(description)
            if setters:
                cur.execute(
                    f"update lessons set {', '.join(setters)} where id = %s",
                    (*params, lesson_id),
                )

            for field, rows in collections.items():
                if rows is _UNSET:
                    continue
                STORES_BY_FIELD[field].replace(cur, list(rows), lesson_id)

            return _load_lesson(cur, lesson_id)

    def delete_lesson(self, lesson_id: str, *, actor_id: Optional[str] = None) -> None:
        """Delete the lesson; FK cascades remove recurrences, teacher links and grants."""
        with self._db.transaction() as cur:
            if actor_id is not None:
                cur.execute("select id from lessons where id = %s for update", (lesson_id,))
                if not cur.fetchone():
                    return
                if not can_write(level_for(cur, actor_id, lesson_id)):
                    raise PermissionDenied("forbidden")
            cur.execute("delete from lessons where id = %s", (lesson_id,))

    # --- Permissions -------------------------------------------------------------
    def lesson_exists(self, lesson_id: str) -> bool:
        with self._db.transaction() as cur:
            cur.execute("select 1 from lessons where id = %s", (lesson_id,))
            return cur.fetchone() is not None

    def permission_level(self, account_id: str, lesson_id: str) -> PermissionLevel:
        with self._db.transaction() as cur:
            return level_for(cur, account_id, lesson_id)

    def grant_permission(self, lesson_id: str, account_id: str, permission_type: PermissionType) -> None:
        with self._db.transaction() as cur:
            grant(cur, lesson_id, account_id, permission_type)

    # --- Occurrence resolution ---------------------------------------------------
    def lessons_for_date(self, day: date, account_id: str) -> List[Lesson]:
        """Return readable lessons with at least one recurrence matching ``day``."""
        query = (
            "select distinct x.lesson_id::text from (\n"
            + lesson_ids_for_date_sql()
            + "\n) x where x.lesson_id in ("
            + READABLE_LESSONS_SQL.replace("%s", "%(account_id)s")
            + ")"
        )
        with self._db.transaction(snapshot=True) as cur:
            cur.execute(query, {"day": day, "account_id": account_id})
            ids = [str(row[0]) for row in cur.fetchall() or []]
            lessons = _load_lessons(cur, ids)
        logger.debug("Resolved %d lessons for %s", len(lessons), day.isoformat())
        return lessons


__all__ = ["DBLessonRepo"]
