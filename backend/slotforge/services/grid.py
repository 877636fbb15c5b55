from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Protocol

from slotforge.core.exceptions import EmptySlotError, InvalidSlotError
from slotforge.models.timetable_entry import AssignmentSource, GridStatus
from slotforge.services.directory import InstructorDirectory
from slotforge.services.periods import PeriodCalendar

SlotKey = tuple[str, int]


@dataclass(frozen=True)
class Assignment:
    subject: str
    instructor_id: str | None = None
    source: AssignmentSource = AssignmentSource.explicit

    def __post_init__(self) -> None:
        if not self.subject or not self.subject.strip():
            raise InvalidSlotError("An assignment requires a subject")

    @property
    def is_auto_resolved(self) -> bool:
        return self.source == AssignmentSource.auto_resolved


@dataclass(frozen=True)
class GridSnapshot:
    class_group_name: str
    term: str
    status: GridStatus = GridStatus.draft
    slots: Mapping[SlotKey, Assignment] = field(default_factory=dict)
    notes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "slots", MappingProxyType(dict(self.slots)))
        object.__setattr__(self, "notes", tuple(self.notes))

    def filled_slots(self) -> list[tuple[SlotKey, Assignment]]:
        return sorted(self.slots.items(), key=lambda item: item[0])

    def __len__(self) -> int:
        return len(self.slots)


class InstructorResolver(Protocol):
    def resolve(self, subject: str, day: str, period_ordinal: int) -> str | None:
        ...


class RotationPool:
    """Hands out specialists of a subject in turn, skipping unavailable ones."""

    def __init__(self, directory: InstructorDirectory) -> None:
        self._directory = directory
        self._cursor: dict[str, int] = defaultdict(int)

    def resolve(self, subject: str, day: str, period_ordinal: int) -> str | None:
        candidates = [profile for profile in self._directory.specialists(subject) if profile.is_available(day)]
        if not candidates:
            return None
        candidates.sort(key=lambda profile: profile.instructor_id)
        index = self._cursor[subject] % len(candidates)
        self._cursor[subject] += 1
        return candidates[index].instructor_id


class ScheduleGrid:
    """Mutable timetable of one class group for one term."""

    def __init__(
        self,
        class_group_name: str,
        term: str,
        calendar: PeriodCalendar,
        *,
        status: GridStatus = GridStatus.draft,
        resolver: InstructorResolver | None = None,
        notes: Iterable[str] = (),
    ) -> None:
        self.class_group_name = class_group_name
        self.term = term
        self.calendar = calendar
        self.status = status
        self.resolver = resolver
        self.notes: list[str] = list(notes)
        self._slots: dict[SlotKey, Assignment] = {}

    @classmethod
    def from_snapshot(
        cls,
        snapshot: GridSnapshot,
        calendar: PeriodCalendar,
        *,
        resolver: InstructorResolver | None = None,
    ) -> "ScheduleGrid":
        grid = cls(
            snapshot.class_group_name,
            snapshot.term,
            calendar,
            status=snapshot.status,
            resolver=resolver,
            notes=snapshot.notes,
        )
        for (day, period_ordinal), assignment in snapshot.filled_slots():
            key = grid._teaching_key(day, period_ordinal)
            grid._slots[key] = assignment
        return grid

    def _teaching_key(self, day: str, period_ordinal: int) -> SlotKey:
        normalized, period = self.calendar.require_teaching(day, period_ordinal)
        return normalized, period.ordinal

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, key: object) -> bool:
        return key in self._slots

    def get(self, day: str, period_ordinal: int) -> Assignment | None:
        return self._slots.get((self.calendar.require_day(day), period_ordinal))

    def filled_slots(self) -> list[tuple[SlotKey, Assignment]]:
        return sorted(self._slots.items(), key=lambda item: item[0])

    def set_slot(self, day: str, period_ordinal: int, subject: str) -> Assignment:
        key = self._teaching_key(day, period_ordinal)
        subject = (subject or "").strip()
        if not subject:
            raise InvalidSlotError(
                "Subject must not be empty; use clear_slot to empty a slot",
                details={"day": key[0], "periodOrdinal": key[1]},
            )

        current = self._slots.get(key)
        if current is not None and current.instructor_id is not None:
            assignment = Assignment(subject=subject, instructor_id=current.instructor_id, source=current.source)
        else:
            resolved = self.resolver.resolve(subject, key[0], key[1]) if self.resolver is not None else None
            source = AssignmentSource.auto_resolved if resolved is not None else AssignmentSource.explicit
            assignment = Assignment(subject=subject, instructor_id=resolved, source=source)
        self._slots[key] = assignment
        return assignment

    def assign_instructor(
        self,
        day: str,
        period_ordinal: int,
        instructor_id: str | None,
        *,
        source: AssignmentSource = AssignmentSource.explicit,
    ) -> Assignment:
        key = self._teaching_key(day, period_ordinal)
        current = self._slots.get(key)
        if current is None:
            raise EmptySlotError(key[0], key[1])
        assignment = Assignment(subject=current.subject, instructor_id=instructor_id, source=source)
        self._slots[key] = assignment
        return assignment

    def clear_slot(self, day: str, period_ordinal: int) -> Assignment | None:
        key = (self.calendar.require_day(day), self.calendar.get(period_ordinal).ordinal)
        return self._slots.pop(key, None)

    def add_note(self, note: str) -> None:
        if note and note not in self.notes:
            self.notes.append(note)

    def snapshot(self) -> GridSnapshot:
        return GridSnapshot(
            class_group_name=self.class_group_name,
            term=self.term,
            status=self.status,
            slots=dict(self._slots),
            notes=tuple(self.notes),
        )
