from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Literal, Protocol

from slotforge.models.timetable_entry import GridStatus
from slotforge.services.directory import InstructorDirectory
from slotforge.services.grid import Assignment, SlotKey
from slotforge.services.periods import (
    PeriodCalendar,
    intervals_overlap,
    normalize_day,
    parse_time_to_minutes,
)
from slotforge.services.store import AssignmentStore

ConflictSource = Literal["session", "store"]


class GridLike(Protocol):
    class_group_name: str

    def filled_slots(self) -> list[tuple[SlotKey, Assignment]]:
        ...


@dataclass(frozen=True)
class ConflictResult:
    conflicting: bool
    conflicting_class_group: str | None = None
    message: str | None = None
    source: ConflictSource | None = None

    def to_dict(self) -> dict:
        return {
            "conflicting": self.conflicting,
            "conflictingClassGroup": self.conflicting_class_group,
            "message": self.message,
            "source": self.source,
        }


NO_CONFLICT = ConflictResult(conflicting=False)


@dataclass(frozen=True)
class SlotConflict:
    class_group_name: str
    day: str
    period_ordinal: int
    start_time: str
    end_time: str
    subject: str
    instructor_id: str
    competing_class_group: str
    source: ConflictSource
    message: str

    def to_dict(self) -> dict:
        return {
            "classGroupName": self.class_group_name,
            "day": self.day,
            "periodOrdinal": self.period_ordinal,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "subject": self.subject,
            "instructorId": self.instructor_id,
            "competingClassGroup": self.competing_class_group,
            "source": self.source,
            "message": self.message,
        }


class ConflictDetector:
    """Two-tier instructor double-booking detection.

    The session tier scans grids held in memory by the current editing
    session. The store tier asks the persisted assignment records and is the
    source of truth: when it reports a conflict that result wins.
    """

    def __init__(
        self,
        calendar: PeriodCalendar,
        *,
        store: AssignmentStore | None = None,
        directory: InstructorDirectory | None = None,
    ) -> None:
        self.calendar = calendar
        self.store = store
        self.directory = directory or InstructorDirectory()

    def _message(self, instructor_id: str, class_group_name: str, label: str) -> str:
        return f"{self.directory.name_for(instructor_id)} is busy in {class_group_name} ({label})"

    def check_session(
        self,
        instructor_id: str | None,
        day: str,
        start_time: str,
        end_time: str,
        exclude_class_group: str | None,
        grids: Iterable[GridLike],
    ) -> ConflictResult:
        if not instructor_id:
            return NO_CONFLICT
        day = normalize_day(day)
        start, end = parse_time_to_minutes(start_time), parse_time_to_minutes(end_time)
        for grid in grids:
            if grid.class_group_name == exclude_class_group:
                continue
            for (slot_day, period_ordinal), assignment in grid.filled_slots():
                if slot_day != day or assignment.instructor_id != instructor_id:
                    continue
                period = self.calendar.get(period_ordinal)
                if intervals_overlap(start, end, period.start_minutes, period.end_minutes):
                    return ConflictResult(
                        conflicting=True,
                        conflicting_class_group=grid.class_group_name,
                        message=self._message(instructor_id, grid.class_group_name, "Unsaved draft"),
                        source="session",
                    )
        return NO_CONFLICT

    async def check_store(
        self,
        instructor_id: str | None,
        day: str,
        start_time: str,
        end_time: str,
        exclude_class_group: str | None,
        *,
        term: str,
        statuses: Iterable[GridStatus] | None = None,
    ) -> ConflictResult:
        if not instructor_id or self.store is None:
            return NO_CONFLICT
        day = normalize_day(day)
        bookings = await self.store.find_bookings(
            term=term,
            instructor_ids=[instructor_id],
            days=[day],
            exclude_class_groups=[exclude_class_group] if exclude_class_group else [],
            statuses=statuses,
        )
        start, end = parse_time_to_minutes(start_time), parse_time_to_minutes(end_time)
        # Published bookings are reported ahead of drafts.
        bookings.sort(key=lambda booking: booking.status != GridStatus.published)
        for booking in bookings:
            booking_start = parse_time_to_minutes(booking.start_time)
            booking_end = parse_time_to_minutes(booking.end_time)
            if intervals_overlap(start, end, booking_start, booking_end):
                label = "Published" if booking.status == GridStatus.published else "Draft"
                return ConflictResult(
                    conflicting=True,
                    conflicting_class_group=booking.class_group_name,
                    message=self._message(instructor_id, booking.class_group_name, label),
                    source="store",
                )
        return NO_CONFLICT

    async def check_conflict(
        self,
        instructor_id: str | None,
        day: str,
        start_time: str,
        end_time: str,
        exclude_class_group: str | None,
        *,
        term: str,
        grids: Iterable[GridLike] = (),
        statuses: Iterable[GridStatus] | None = None,
    ) -> ConflictResult:
        local = self.check_session(instructor_id, day, start_time, end_time, exclude_class_group, grids)
        authoritative = await self.check_store(
            instructor_id,
            day,
            start_time,
            end_time,
            exclude_class_group,
            term=term,
            statuses=statuses,
        )
        return self.reconcile(local, authoritative)

    @staticmethod
    def reconcile(local: ConflictResult, authoritative: ConflictResult) -> ConflictResult:
        # Unsaved drafts are invisible to the store, so a local hit only survives an empty store result.
        if authoritative.conflicting:
            return authoritative
        return local

    def find_session_conflicts(self, grids: Iterable[GridLike]) -> list[SlotConflict]:
        """List every clash between different grids, once from each side."""
        bookings: dict[tuple[str, str], list[tuple[str, int, Assignment]]] = defaultdict(list)
        for grid in grids:
            for (day, period_ordinal), assignment in grid.filled_slots():
                if assignment.instructor_id:
                    bookings[(assignment.instructor_id, day)].append(
                        (grid.class_group_name, period_ordinal, assignment)
                    )

        conflicts: list[SlotConflict] = []
        for (instructor_id, day), entries in bookings.items():
            for index, (group_a, ordinal_a, assignment_a) in enumerate(entries):
                period_a = self.calendar.get(ordinal_a)
                for group_b, ordinal_b, assignment_b in entries[index + 1:]:
                    if group_a == group_b:
                        continue
                    period_b = self.calendar.get(ordinal_b)
                    if not intervals_overlap(
                        period_a.start_minutes, period_a.end_minutes, period_b.start_minutes, period_b.end_minutes
                    ):
                        continue
                    for own_group, period, assignment, other_group in (
                        (group_a, period_a, assignment_a, group_b),
                        (group_b, period_b, assignment_b, group_a),
                    ):
                        conflicts.append(
                            SlotConflict(
                                class_group_name=own_group,
                                day=day,
                                period_ordinal=period.ordinal,
                                start_time=period.start_time,
                                end_time=period.end_time,
                                subject=assignment.subject,
                                instructor_id=instructor_id,
                                competing_class_group=other_group,
                                source="session",
                                message=self._message(instructor_id, other_group, "Unsaved draft"),
                            )
                        )
        conflicts.sort(key=lambda item: (item.class_group_name, item.day, item.period_ordinal, item.competing_class_group))
        return conflicts

    async def find_store_conflicts(
        self,
        grid: GridLike,
        *,
        term: str,
        statuses: Iterable[GridStatus] | None = None,
    ) -> list[SlotConflict]:
        staffed = [(key, assignment) for key, assignment in grid.filled_slots() if assignment.instructor_id]
        if not staffed or self.store is None:
            return []
        bookings = await self.store.find_bookings(
            term=term,
            instructor_ids={assignment.instructor_id for _, assignment in staffed},
            days={day for (day, _), _ in staffed},
            exclude_class_groups=[grid.class_group_name],
            statuses=statuses,
        )
        by_instructor_day = defaultdict(list)
        for booking in bookings:
            by_instructor_day[(booking.instructor_id, booking.day)].append(booking)

        conflicts: list[SlotConflict] = []
        for (day, period_ordinal), assignment in staffed:
            period = self.calendar.get(period_ordinal)
            for booking in by_instructor_day.get((assignment.instructor_id, day), []):
                if not intervals_overlap(
                    period.start_minutes,
                    period.end_minutes,
                    parse_time_to_minutes(booking.start_time),
                    parse_time_to_minutes(booking.end_time),
                ):
                    continue
                label = "Published" if booking.status == GridStatus.published else "Draft"
                conflicts.append(
                    SlotConflict(
                        class_group_name=grid.class_group_name,
                        day=day,
                        period_ordinal=period_ordinal,
                        start_time=period.start_time,
                        end_time=period.end_time,
                        subject=assignment.subject,
                        instructor_id=assignment.instructor_id,
                        competing_class_group=booking.class_group_name,
                        source="store",
                        message=self._message(assignment.instructor_id, booking.class_group_name, label),
                    )
                )
        return conflicts
