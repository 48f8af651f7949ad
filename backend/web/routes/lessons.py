"""
Lessons API routes.

Why:
    Expose lesson create/read/update/delete and the per-day occurrence query.
    The adapter relies on the bearer middleware for authentication, passes the
    verified account id explicitly into every use case and maps domain errors
    to HTTP statuses. Persistence is the repository stored on
    ``app.state.lessons_repo`` (wired at startup; tests assign their own).

Notes:
    - Responses are owner/grant-scoped, so every response is
      ``Cache-Control: private, no-store``.
    - Service calls are synchronous (psycopg); they run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from backend.identity_access.domain import Principal
from backend.scheduling.errors import PermissionDenied, SchedulingError, StorageError, ValidationError
from backend.scheduling.services.lessons import LessonsService

lessons_router = APIRouter(tags=["Lessons"])
logger = logging.getLogger("lessons.web")


# --- Request models --------------------------------------------------------------

class LessonCreate(BaseModel):
    # Accept raw values and validate in the service to return 400 (not 422)
    title: Any = None
    description: Any = None
    singles: Any = Field(default_factory=list)
    daily: Any = Field(default_factory=list)
    weekly: Any = Field(default_factory=list)
    monthly: Any = Field(default_factory=list)


class LessonUpdate(BaseModel):
    # Absent = unchanged; present (even []) = replace. Use exclude_unset below.
    title: Any = None
    description: Any = None
    singles: Any = None
    daily: Any = None
    weekly: Any = None
    monthly: Any = None


# --- Helpers ---------------------------------------------------------------------

def _private_json(payload, *, status_code: int = 200) -> JSONResponse:
    """Return JSON with cache disabled for shared caches and browsers."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _error_response(exc: SchedulingError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        return _private_json({"error": "bad_request", "detail": exc.code}, status_code=400)
    if isinstance(exc, PermissionDenied):
        return _private_json({"error": "forbidden"}, status_code=403)
    if isinstance(exc, StorageError):
        logger.warning("Lessons storage failure: %s", exc.code)
        return _private_json({"error": "storage_unavailable"}, status_code=503)
    return _private_json({"error": "bad_request", "detail": exc.code}, status_code=400)


def _principal(request: Request) -> Optional[Principal]:
    principal = getattr(request.state, "principal", None)
    return principal if isinstance(principal, Principal) else None


def _service(request: Request) -> Optional[LessonsService]:
    repo = getattr(request.app.state, "lessons_repo", None)
    if repo is None:
        return None
    return LessonsService(repo)


def _is_uuid_like(value: str) -> bool:
    """Best-effort UUID format check without coercing FastAPI to return 422."""
    try:
        UUID(str(value))
    except (ValueError, TypeError):
        return False
    return True


def _unauthenticated() -> JSONResponse:
    return _private_json({"error": "unauthenticated"}, status_code=401)


def _unavailable() -> JSONResponse:
    return _private_json({"error": "storage_unavailable"}, status_code=503)


# --- Routes ----------------------------------------------------------------------

@lessons_router.post("/api/lessons")
async def create_lesson(request: Request, payload: LessonCreate):
    """Create a lesson; the caller receives a read-write grant.

    Behavior:
        - 201 with `Lesson` on success (teachers empty)
        - 400 on invalid title or recurrence input
    """
    principal = _principal(request)
    if principal is None:
        return _unauthenticated()
    svc = _service(request)
    if svc is None:
        return _unavailable()
    try:
        lesson = await asyncio.to_thread(
            lambda: svc.create_lesson(
                principal.account_id,
                title=payload.title,
                description=payload.description,
                singles=payload.singles,
                daily=payload.daily,
                weekly=payload.weekly,
                monthly=payload.monthly,
            )
        )
    except SchedulingError as exc:
        return _error_response(exc)
    return _private_json(lesson.to_payload(), status_code=201)


@lessons_router.get("/api/lessons")
async def list_lessons_for_date(request: Request, date: Optional[str] = None):
    """Return lessons occurring on `date` (YYYY-MM-DD) that the caller may read."""
    principal = _principal(request)
    if principal is None:
        return _unauthenticated()
    day = _parse_query_date(date)
    if day is None:
        return _private_json({"error": "bad_request", "detail": "invalid_date"}, status_code=400)
    svc = _service(request)
    if svc is None:
        return _unavailable()
    try:
        lessons = await asyncio.to_thread(svc.lessons_for_date, principal.account_id, day)
    except SchedulingError as exc:
        return _error_response(exc)
    return _private_json([lesson.to_payload() for lesson in lessons])


@lessons_router.get("/api/lessons/{lesson_id}")
async def get_lesson(request: Request, lesson_id: str):
    """Get a lesson by id: requires at least read permission.

    Behavior:
        - 200 with `Lesson`; 404 when unknown; 403 without a grant
    """
    principal = _principal(request)
    if principal is None:
        return _unauthenticated()
    if not _is_uuid_like(lesson_id):
        return _private_json({"error": "bad_request", "detail": "invalid_lesson_id"}, status_code=400)
    svc = _service(request)
    if svc is None:
        return _unavailable()
    try:
        lesson = await asyncio.to_thread(svc.get_lesson, principal.account_id, lesson_id)
    except SchedulingError as exc:
        return _error_response(exc)
    if lesson is None:
        return _private_json({"error": "not_found"}, status_code=404)
    return _private_json(lesson.to_payload())


@lessons_router.patch("/api/lessons/{lesson_id}")
async def update_lesson(request: Request, lesson_id: str, payload: LessonUpdate):
    """Partially update a lesson: requires read-write permission.

    Behavior:
        - Fields left out of the body stay unchanged; a provided recurrence
          list (including `[]`) replaces that kind entirely.
        - 200 with the updated `Lesson`; 400 on invalid input; 403 without
          read-write; 404 when unknown
    """
    principal = _principal(request)
    if principal is None:
        return _unauthenticated()
    if not _is_uuid_like(lesson_id):
        return _private_json({"error": "bad_request", "detail": "invalid_lesson_id"}, status_code=400)
    svc = _service(request)
    if svc is None:
        return _unavailable()
    updates = payload.model_dump(mode="python", exclude_unset=True)
    try:
        lesson = await asyncio.to_thread(lambda: svc.update_lesson(principal.account_id, lesson_id, **updates))
    except SchedulingError as exc:
        return _error_response(exc)
    if lesson is None:
        return _private_json({"error": "not_found"}, status_code=404)
    return _private_json(lesson.to_payload())


@lessons_router.delete("/api/lessons/{lesson_id}")
async def delete_lesson(request: Request, lesson_id: str):
    """Delete a lesson and everything attached to it: requires read-write.

    Behavior:
        - 204 on success and for unknown ids (idempotent)
        - 403 when the caller lacks read-write on an existing lesson
    """
    principal = _principal(request)
    if principal is None:
        return _unauthenticated()
    if not _is_uuid_like(lesson_id):
        return _private_json({"error": "bad_request", "detail": "invalid_lesson_id"}, status_code=400)
    svc = _service(request)
    if svc is None:
        return _unavailable()
    try:
        await asyncio.to_thread(svc.delete_lesson, principal.account_id, lesson_id)
    except SchedulingError as exc:
        return _error_response(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


def _parse_query_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        return None
