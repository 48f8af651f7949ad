"""
Recurrence rules for lessons: value objects and their date predicates.

Why:
    A lesson may occur once or repeat daily, weekly or monthly. Each kind has
    its own fields and validation, so each is a small frozen dataclass instead
    of one generic "rule" record. All four share the same capability set:
    ``matches(day)``, ``from_payload(dict)`` and ``to_payload()``.

Behavior:
    - ``end_date`` is an inclusive bound; ``None`` means unbounded.
    - Weekly: the weekday must match and the whole weeks elapsed since
      ``start_date`` must be a multiple of ``every``.
    - Monthly: the anchor day-of-month is ``start_date.day``. Months that do not
      have that day (e.g. the 31st in February) are skipped, never clamped.
    - Timezone-aware timestamps are normalised to naive UTC; naive values are
      taken as-is.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import IntEnum
from typing import Any, ClassVar, Mapping, Optional

from .errors import ValidationError


class WeekDay(IntEnum):
    """ISO weekday numbering (Monday = 1 ... Sunday = 7)."""

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7

    @classmethod
    def parse(cls, value: object) -> "WeekDay":
        if isinstance(value, WeekDay):
            return value
        if isinstance(value, bool):
            raise ValidationError("invalid_week_day")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError as exc:
                raise ValidationError("invalid_week_day") from exc
        if isinstance(value, str):
            name = value.strip().upper()
            if name.isdigit():
                return cls.parse(int(name))
            try:
                return cls[name]
            except KeyError as exc:
                raise ValidationError("invalid_week_day") from exc
        raise ValidationError("invalid_week_day")


def months_between(start: date, day: date) -> int:
    """Whole calendar months from ``start``'s month to ``day``'s month."""
    return (day.year - start.year) * 12 + (day.month - start.month)


def _in_range(start: date, end: Optional[date], day: date) -> bool:
    if day < start:
        return False
    return end is None or day <= end


def _parse_date(value: object, code: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(code) from exc
    raise ValidationError(code)


def _parse_optional_date(value: object, code: str) -> Optional[date]:
    if value is None:
        return None
    return _parse_date(value, code)


def _parse_time(value: object) -> time:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip()).replace(tzinfo=None)
        except ValueError as exc:
            raise ValidationError("invalid_time") from exc
    raise ValidationError("invalid_time")


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return _naive_utc(datetime.fromisoformat(raw))
        except ValueError as exc:
            raise ValidationError("invalid_occurs_at") from exc
    raise ValidationError("invalid_occurs_at")


# Upper bound of the `every` integer column.
MAX_EVERY = 2**31 - 1


def _parse_every(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError("invalid_every")
    try:
        every = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_every") from exc
    if isinstance(value, float) and value != every:
        raise ValidationError("invalid_every")
    if every < 1 or every > MAX_EVERY:
        raise ValidationError("invalid_every")
    return every


def _check_bounds(start: date, end: Optional[date]) -> None:
    if end is not None and end < start:
        raise ValidationError("invalid_date_range")


def _require_mapping(payload: object) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("invalid_recurrence")
    return payload


@dataclass(frozen=True)
class SingleOccurrence:
    occurs_at: datetime

    kind: ClassVar[str] = "single"

    def __post_init__(self) -> None:
        if not isinstance(self.occurs_at, datetime):
            raise ValidationError("invalid_occurs_at")

    def matches(self, day: date) -> bool:
        return self.occurs_at.date() == day

    def sort_key(self) -> tuple:
        return (self.occurs_at,)

    @classmethod
    def from_payload(cls, payload: object) -> "SingleOccurrence":
        data = _require_mapping(payload)
        return cls(occurs_at=_parse_datetime(data.get("occurs_at")))

    def to_payload(self) -> dict:
        return {"occurs_at": self.occurs_at.isoformat()}


@dataclass(frozen=True)
class DailyRepeat:
    start_date: date
    end_date: Optional[date]
    time: time

    kind: ClassVar[str] = "daily"

    def __post_init__(self) -> None:
        _check_bounds(self.start_date, self.end_date)

    def matches(self, day: date) -> bool:
        return _in_range(self.start_date, self.end_date, day)

    def sort_key(self) -> tuple:
        return (self.start_date, self.end_date or date.max, self.time)

    @classmethod
    def from_payload(cls, payload: object) -> "DailyRepeat":
        data = _require_mapping(payload)
        return cls(
            start_date=_parse_date(data.get("start_date"), "invalid_start_date"),
            end_date=_parse_optional_date(data.get("end_date"), "invalid_end_date"),
            time=_parse_time(data.get("time")),
        )

    def to_payload(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "time": self.time.isoformat(),
        }


@dataclass(frozen=True)
class WeeklyRepeat:
    start_date: date
    end_date: Optional[date]
    week_day: WeekDay
    every: int
    time: time

    kind: ClassVar[str] = "weekly"

    def __post_init__(self) -> None:
        _check_bounds(self.start_date, self.end_date)
        object.__setattr__(self, "week_day", WeekDay.parse(self.week_day))
        object.__setattr__(self, "every", _parse_every(self.every))

    def matches(self, day: date) -> bool:
        if not _in_range(self.start_date, self.end_date, day):
            return False
        if day.isoweekday() != int(self.week_day):
            return False
        weeks = (day - self.start_date).days // 7
        return weeks % self.every == 0

    def sort_key(self) -> tuple:
        return (self.start_date, self.end_date or date.max, int(self.week_day), self.every, self.time)

    @classmethod
    def from_payload(cls, payload: object) -> "WeeklyRepeat":
        data = _require_mapping(payload)
        return cls(
            start_date=_parse_date(data.get("start_date"), "invalid_start_date"),
            end_date=_parse_optional_date(data.get("end_date"), "invalid_end_date"),
            week_day=WeekDay.parse(data.get("week_day")),
            every=_parse_every(data.get("every", 1)),
            time=_parse_time(data.get("time")),
        )

    def to_payload(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "week_day": int(self.week_day),
            "every": self.every,
            "time": self.time.isoformat(),
        }


@dataclass(frozen=True)
class MonthlyRepeat:
    start_date: date
    end_date: Optional[date]
    time: time
    every: int

    kind: ClassVar[str] = "monthly"

    def __post_init__(self) -> None:
        _check_bounds(self.start_date, self.end_date)
        object.__setattr__(self, "every", _parse_every(self.every))

    def matches(self, day: date) -> bool:
        if not _in_range(self.start_date, self.end_date, day):
            return False
        # Months without the anchor day never match (no clamping to month end).
        if day.day != self.start_date.day:
            return False
        return months_between(self.start_date, day) % self.every == 0

    def sort_key(self) -> tuple:
        return (self.start_date, self.end_date or date.max, self.time, self.every)

    @classmethod
    def from_payload(cls, payload: object) -> "MonthlyRepeat":
        data = _require_mapping(payload)
        return cls(
            start_date=_parse_date(data.get("start_date"), "invalid_start_date"),
            end_date=_parse_optional_date(data.get("end_date"), "invalid_end_date"),
            time=_parse_time(data.get("time")),
            every=_parse_every(data.get("every", 1)),
        )

    def to_payload(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "time": self.time.isoformat(),
            "every": self.every,
        }


RECURRENCE_KINDS = {
    "singles": SingleOccurrence,
    "daily": DailyRepeat,
    "weekly": WeeklyRepeat,
    "monthly": MonthlyRepeat,
}


def parse_recurrences(field: str, value: object) -> list:
    """Parse a JSON list for ``field`` (``singles``/``daily``/...) into value objects."""
    kind = RECURRENCE_KINDS[field]
    if value is None or isinstance(value, (str, bytes, Mapping)):
        raise ValidationError(f"invalid_{field}")
    try:
        items = list(value)  # type: ignore[call-overload]
    except TypeError as exc:
        raise ValidationError(f"invalid_{field}") from exc
    return [item if isinstance(item, kind) else kind.from_payload(item) for item in items]


def sort_recurrences(items):
    """Return recurrence rows in a stable order (storage order is irrelevant)."""
    return sorted(items, key=lambda item: item.sort_key())


__all__ = [
    "WeekDay",
    "SingleOccurrence",
    "DailyRepeat",
    "WeeklyRepeat",
    "MonthlyRepeat",
    "RECURRENCE_KINDS",
    "months_between",
    "parse_recurrences",
    "sort_recurrences",
]
