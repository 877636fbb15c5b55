from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from slotforge.services.periods import normalize_day


class EmploymentMode(str, Enum):
    full_time = "full_time"
    part_time = "part_time"


@dataclass(frozen=True)
class InstructorProfile:
    instructor_id: str
    name: str
    employment_mode: EmploymentMode = EmploymentMode.full_time
    available_days: frozenset[str] = field(default_factory=frozenset)
    specializations: frozenset[str] = field(default_factory=frozenset)
    max_weekly_periods: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "available_days", frozenset(normalize_day(day) for day in self.available_days))
        object.__setattr__(self, "specializations", frozenset(self.specializations))

    @property
    def is_part_time(self) -> bool:
        return self.employment_mode == EmploymentMode.part_time

    def is_available(self, day: str) -> bool:
        if self.available_days:
            return normalize_day(day) in self.available_days
        # Part-time staff with no declared days cannot be placed anywhere.
        return not self.is_part_time

    def teaches(self, subject: str) -> bool:
        return subject in self.specializations


class InstructorDirectory:
    """Read-only view over the instructor reference data of a tenant."""

    def __init__(self, profiles: Iterable[InstructorProfile] = ()) -> None:
        self._profiles: dict[str, InstructorProfile] = {}
        for profile in profiles:
            self._profiles[profile.instructor_id] = profile

    def __iter__(self) -> Iterator[InstructorProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, instructor_id: object) -> bool:
        return instructor_id in self._profiles

    def get(self, instructor_id: str | None) -> InstructorProfile | None:
        if instructor_id is None:
            return None
        return self._profiles.get(instructor_id)

    def name_for(self, instructor_id: str | None) -> str:
        profile = self.get(instructor_id)
        if profile is not None:
            return profile.name
        return instructor_id or "Unassigned"

    def specialists(self, subject: str) -> list[InstructorProfile]:
        return [profile for profile in self._profiles.values() if profile.teaches(subject)]
