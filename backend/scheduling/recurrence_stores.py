"""
Postgres stores for the four recurrence kinds.

Why:
    The aggregate repository and the occurrence query treat all recurrence
    kinds the same way: list rows of a lesson, insert a batch, delete all rows
    of a lesson, and filter by date. One ``RecurrenceStore`` class configured
    per table keeps that contract in one place while each kind keeps its own
    columns and row mapping.

Design:
    - Every method takes the caller's cursor; stores never open connections or
      commit. They always run inside the repository's transaction.
    - ``date_filter`` is the SQL twin of the value object's ``matches(day)``;
      it expects a named ``%(day)s`` parameter.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from .recurrence import (
    DailyRepeat,
    MonthlyRepeat,
    SingleOccurrence,
    WeekDay,
    WeeklyRepeat,
)


_IN_RANGE_SQL = "start_date <= %(day)s::date and (end_date is null or %(day)s::date <= end_date)"


@dataclass(frozen=True)
class RecurrenceStore:
    field: str
    table: str
    columns: Tuple[str, ...]
    to_params: Callable[[Any], tuple]
    from_row: Callable[[Sequence[Any]], Any]
    date_filter: str

    def list_for_lesson(self, cur: Any, lesson_id: str) -> list:
        cur.execute(
            f"select {', '.join(self.columns)} from {self.table} where lesson_id = %s",
            (lesson_id,),
        )
        return [self.from_row(row) for row in cur.fetchall() or []]

    def list_for_lessons(self, cur: Any, lesson_ids: Sequence[str]) -> Dict[str, list]:
        """Batch variant of ``list_for_lesson`` keyed by lesson id."""
        out: Dict[str, list] = defaultdict(list)
        if not lesson_ids:
            return out
        cur.execute(
            f"select lesson_id::text, {', '.join(self.columns)} from {self.table} "
            "where lesson_id = any(%s::uuid[])",
            (list(lesson_ids),),
        )
        for row in cur.fetchall() or []:
            out[str(row[0])].append(self.from_row(row[1:]))
        return out

    def insert_batch(self, cur: Any, rows: Iterable[Any], lesson_id: str) -> None:
        rows = list(rows)
        if not rows:
            return
        width = len(self.columns) + 1
        placeholders = ", ".join("(" + ", ".join(["%s"] * width) + ")" for _ in rows)
        params: list = []
        for row in rows:
            params.append(lesson_id)
            params.extend(self.to_params(row))
        cur.execute(
            f"insert into {self.table} (lesson_id, {', '.join(self.columns)}) values {placeholders}",
            params,
        )

    def delete_for_lesson(self, cur: Any, lesson_id: str) -> None:
        cur.execute(f"delete from {self.table} where lesson_id = %s", (lesson_id,))

    def replace(self, cur: Any, rows: Iterable[Any], lesson_id: str) -> None:
        """Full replace: drop every row of this kind, then insert ``rows``."""
        self.delete_for_lesson(cur, lesson_id)
        self.insert_batch(cur, rows, lesson_id)

    def matches_date(self, row: Any, day) -> bool:
        return row.matches(day)

    def lesson_ids_for_date_sql(self) -> str:
        return f"select lesson_id from {self.table} where {self.date_filter}"


SINGLES = RecurrenceStore(
    field="singles",
    table="lesson_single_occurrences",
    columns=("occurs_at",),
    to_params=lambda r: (r.occurs_at,),
    from_row=lambda row: SingleOccurrence(occurs_at=row[0]),
    date_filter="occurs_at >= %(day)s::date and occurs_at < %(day)s::date + 1",
)

DAILY = RecurrenceStore(
    field="daily",
    table="lesson_daily_repeats",
    columns=("start_date", "end_date", "scheduled_time"),
    to_params=lambda r: (r.start_date, r.end_date, r.time),
    from_row=lambda row: DailyRepeat(start_date=row[0], end_date=row[1], time=row[2]),
    date_filter=_IN_RANGE_SQL,
)

WEEKLY = RecurrenceStore(
    field="weekly",
    table="lesson_weekly_repeats",
    columns=("start_date", "end_date", "week_day", "every", "scheduled_time"),
    to_params=lambda r: (r.start_date, r.end_date, int(r.week_day), r.every, r.time),
    from_row=lambda row: WeeklyRepeat(
        start_date=row[0],
        end_date=row[1],
        week_day=WeekDay.parse(int(row[2])),
        every=int(row[3]),
        time=row[4],
    ),
    date_filter=(
        _IN_RANGE_SQL
        + " and week_day = extract(isodow from %(day)s::date)"
        + " and ((%(day)s::date - start_date) / 7) %% every = 0"
    ),
)

MONTHLY = RecurrenceStore(
    field="monthly",
    table="lesson_monthly_repeats",
    columns=("start_date", "end_date", "scheduled_time", "every"),
    to_params=lambda r: (r.start_date, r.end_date, r.time, r.every),
    from_row=lambda row: MonthlyRepeat(start_date=row[0], end_date=row[1], time=row[2], every=int(row[3])),
    date_filter=(
        _IN_RANGE_SQL
        + " and extract(day from %(day)s::date) = extract(day from start_date)"
        + " and ((extract(year from %(day)s::date) - extract(year from start_date)) * 12"
        + " + extract(month from %(day)s::date) - extract(month from start_date))::int %% every = 0"
    ),
)

# Fixed iteration order for the aggregate repository and the date query.
RECURRENCE_STORES: Tuple[RecurrenceStore, ...] = (SINGLES, DAILY, WEEKLY, MONTHLY)

STORES_BY_FIELD: Dict[str, RecurrenceStore] = {store.field: store for store in RECURRENCE_STORES}


def lesson_ids_for_date_sql() -> str:
    """Union of all kinds' matching lesson ids (expects ``%(day)s``)."""
    return "\nunion\n".join(store.lesson_ids_for_date_sql() for store in RECURRENCE_STORES)


__all__ = [
    "RecurrenceStore",
    "SINGLES",
    "DAILY",
    "WEEKLY",
    "MONTHLY",
    "RECURRENCE_STORES",
    "STORES_BY_FIELD",
    "lesson_ids_for_date_sql",
]
