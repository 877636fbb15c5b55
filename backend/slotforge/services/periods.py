from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from slotforge.core.config import PeriodSetting, Settings
from slotforge.core.exceptions import ConfigurationError, InvalidSlotError

DAY_VALUES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

DAY_SHORT_MAP = {
    "Mon": "Monday",
    "Tue": "Tuesday",
    "Wed": "Wednesday",
    "Thu": "Thursday",
    "Fri": "Friday",
    "Sat": "Saturday",
    "Sun": "Sunday",
}

WEEKDAYS = DAY_VALUES[:5]

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_day(value: str) -> str:
    day = value.strip()
    return DAY_SHORT_MAP.get(day, day)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return max(start_a, start_b) < min(end_a, end_b)


@dataclass(frozen=True)
class Period:
    ordinal: int
    name: str
    start_time: str
    end_time: str
    is_break: bool = False

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)


class PeriodCalendar:
    """Ordered periods of a school day, shared by every class group and day."""

    def __init__(self, periods: Iterable[Period], days: Sequence[str] = WEEKDAYS) -> None:
        self.periods: tuple[Period, ...] = tuple(periods)
        self.days: tuple[str, ...] = tuple(normalize_day(day) for day in days)
        self._validate()

    @classmethod
    def from_entries(cls, entries: Iterable[PeriodSetting], days: Sequence[str] = WEEKDAYS) -> "PeriodCalendar":
        periods = [
            Period(
                ordinal=index,
                name=entry.name,
                start_time=entry.start_time,
                end_time=entry.end_time,
                is_break=entry.is_break,
            )
            for index, entry in enumerate(entries)
        ]
        return cls(periods, days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PeriodCalendar":
        return cls.from_entries(settings.period_calendar, settings.school_days)

    def _validate(self) -> None:
        if not self.periods:
            raise ConfigurationError("Period calendar must contain at least one period")
        if not self.days:
            raise ConfigurationError("Period calendar must contain at least one day")
        invalid_days = [day for day in self.days if day not in DAY_VALUES]
        if invalid_days:
            raise ConfigurationError(f"Invalid day value(s): {', '.join(invalid_days)}")
        previous_end = -1
        for index, period in enumerate(self.periods):
            if period.ordinal != index:
                raise ConfigurationError(f"Period '{period.name}' has ordinal {period.ordinal}, expected {index}")
            try:
                start, end = period.start_minutes, period.end_minutes
            except ValueError as exc:
                raise ConfigurationError(f"Period '{period.name}': {exc}") from exc
            if end <= start:
                raise ConfigurationError(f"Period '{period.name}' must end after it starts")
            if start < previous_end:
                raise ConfigurationError(f"Period '{period.name}' overlaps the previous period")
            previous_end = end

    def __len__(self) -> int:
        return len(self.periods)

    def __iter__(self):
        return iter(self.periods)

    @property
    def teaching_periods(self) -> tuple[Period, ...]:
        return tuple(period for period in self.periods if not period.is_break)

    def get(self, period_ordinal: int) -> Period:
        if period_ordinal < 0 or period_ordinal >= len(self.periods):
            raise InvalidSlotError(
                f"Period ordinal {period_ordinal} is outside the calendar (0-{len(self.periods) - 1})",
                details={"periodOrdinal": period_ordinal},
            )
        return self.periods[period_ordinal]

    def require_day(self, day: str) -> str:
        normalized = normalize_day(day)
        if normalized not in self.days:
            raise InvalidSlotError(f"{day} is not a school day", details={"day": day})
        return normalized

    def require_teaching(self, day: str, period_ordinal: int) -> tuple[str, Period]:
        normalized = self.require_day(day)
        period = self.get(period_ordinal)
        if period.is_break:
            raise InvalidSlotError(
                f"{period.name} on {normalized} is a break and cannot hold an assignment",
                details={"day": normalized, "periodOrdinal": period_ordinal},
            )
        return normalized, period

    def teaching_ordinal(self, teaching_index: int) -> int:
        """Map the n-th teaching period of the day to its calendar ordinal."""
        teaching = self.teaching_periods
        if teaching_index < 0 or teaching_index >= len(teaching):
            raise InvalidSlotError(
                f"Teaching period index {teaching_index} is outside the calendar (0-{len(teaching) - 1})"
            )
        return teaching[teaching_index].ordinal
