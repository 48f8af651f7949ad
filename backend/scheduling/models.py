"""Lesson aggregate record shared by repositories, services and the web adapter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .recurrence import DailyRepeat, MonthlyRepeat, SingleOccurrence, WeeklyRepeat, sort_recurrences


@dataclass
class Lesson:
    id: str
    title: str
    description: Optional[str] = None
    singles: List[SingleOccurrence] = field(default_factory=list)
    daily: List[DailyRepeat] = field(default_factory=list)
    weekly: List[WeeklyRepeat] = field(default_factory=list)
    monthly: List[MonthlyRepeat] = field(default_factory=list)
    teachers: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        # Row order from storage carries no meaning; keep equality order-free.
        self.singles = sort_recurrences(self.singles)
        self.daily = sort_recurrences(self.daily)
        self.weekly = sort_recurrences(self.weekly)
        self.monthly = sort_recurrences(self.monthly)
        self.teachers = sorted(set(self.teachers))

    @property
    def has_recurrences(self) -> bool:
        return bool(self.singles or self.daily or self.weekly or self.monthly)

    def to_payload(self) -> dict:
        payload = {
            "id": self.id,
            "title": self.title,
            "singles": [s.to_payload() for s in self.singles],
            "daily": [r.to_payload() for r in self.daily],
            "weekly": [r.to_payload() for r in self.weekly],
            "monthly": [r.to_payload() for r in self.monthly],
            "teachers": list(self.teachers),
        }
        if self.description is not None:
            payload["description"] = self.description
        return payload


__all__ = ["Lesson"]
