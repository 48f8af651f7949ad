"""
Resolving the lessons that occur on a calendar day for one account.

A lesson is returned when at least one of its recurrence rows matches the day
and the account holds any grant on it. Each lesson appears at most once.
"""
from __future__ import annotations

from datetime import date

import pytest

from backend.scheduling.errors import ValidationError
from backend.scheduling.permissions import PermissionType
from backend.scheduling.repo_memory import InMemoryLessonRepo
from backend.scheduling.services.lessons import LessonsService


OWNER = "acct-owner"
READER = "acct-reader"
EDITOR = "acct-editor"
STRANGER = "acct-stranger"

BIWEEKLY_MONDAY = {"start_date": "2024-01-01", "week_day": 1, "every": 2, "time": "09:00"}


@pytest.fixture
def repo() -> InMemoryLessonRepo:
    return InMemoryLessonRepo()


@pytest.fixture
def svc(repo) -> LessonsService:
    return LessonsService(repo)


def _ids(lessons) -> list:
    return sorted(lesson.id for lesson in lessons)


def test_biweekly_lesson_occurs_on_alternate_mondays(svc):
    lesson = svc.create_lesson(OWNER, title="Choir", weekly=[BIWEEKLY_MONDAY])

    assert _ids(svc.lessons_for_date(OWNER, date(2024, 1, 15))) == [lesson.id]
    assert svc.lessons_for_date(OWNER, date(2024, 1, 8)) == []


def test_any_grant_level_is_enough_to_see_occurrences(svc, repo):
    lesson = svc.create_lesson(OWNER, title="Chess", weekly=[BIWEEKLY_MONDAY])
    repo.grant_permission(lesson.id, READER, PermissionType.READ)
    repo.grant_permission(lesson.id, EDITOR, PermissionType.READ_WRITE)
    day = date(2024, 1, 29)

    assert _ids(svc.lessons_for_date(READER, day)) == [lesson.id]
    assert _ids(svc.lessons_for_date(EDITOR, day)) == [lesson.id]
    assert svc.lessons_for_date(STRANGER, day) == []


def test_lesson_matching_several_rules_is_returned_once(svc):
    lesson = svc.create_lesson(
        OWNER,
        title="Robotics",
        singles=[{"occurs_at": "2024-01-15T14:00:00"}],
        daily=[{"start_date": "2024-01-10", "end_date": "2024-01-20", "time": "08:00"}],
        weekly=[BIWEEKLY_MONDAY],
        monthly=[{"start_date": "2023-12-15", "time": "10:00", "every": 1}],
    )

    result = svc.lessons_for_date(OWNER, date(2024, 1, 15))
    assert [item.id for item in result] == [lesson.id]
    # The returned aggregate is fully hydrated
    assert result[0] == svc.get_lesson(OWNER, lesson.id)


def test_monthly_lesson_on_the_31st_is_absent_in_february(svc):
    svc.create_lesson(OWNER, title="Review", monthly=[{"start_date": "2024-01-31", "time": "18:00"}])
    assert svc.lessons_for_date(OWNER, date(2024, 2, 29)) == []
    assert len(svc.lessons_for_date(OWNER, date(2024, 3, 31))) == 1


def test_only_matching_lessons_are_returned(svc):
    monday = svc.create_lesson(OWNER, title="Mondays", weekly=[{**BIWEEKLY_MONDAY, "every": 1}])
    svc.create_lesson(OWNER, title="Single", singles=[{"occurs_at": "2024-01-09T10:00:00"}])
    svc.create_lesson(OWNER, title="No schedule")

    assert _ids(svc.lessons_for_date(OWNER, date(2024, 1, 8))) == [monday.id]


def test_deleted_lesson_disappears_from_every_date(svc):
    lesson = svc.create_lesson(
        OWNER,
        title="Temporary",
        daily=[{"start_date": "2024-01-01", "time": "08:00"}],
    )
    assert svc.lessons_for_date(OWNER, date(2024, 3, 3)) != []

    svc.delete_lesson(OWNER, lesson.id)

    for day in (date(2024, 1, 1), date(2024, 3, 3), date(2030, 1, 1)):
        assert svc.lessons_for_date(OWNER, day) == []


def test_update_changes_which_dates_match(svc):
    lesson = svc.create_lesson(OWNER, title="Moved", singles=[{"occurs_at": "2024-02-01T10:00:00"}])
    svc.update_lesson(OWNER, lesson.id, singles=[{"occurs_at": "2024-02-02T10:00:00"}])

    assert svc.lessons_for_date(OWNER, date(2024, 2, 1)) == []
    assert _ids(svc.lessons_for_date(OWNER, date(2024, 2, 2))) == [lesson.id]


def test_date_must_be_a_date(svc):
    with pytest.raises(ValidationError):
        svc.lessons_for_date(OWNER, "2024-01-01")
