from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from slotforge.core.exceptions import ResourceNotFoundError
from slotforge.models.timetable_entry import GridStatus
from slotforge.services.conflict_service import NO_CONFLICT, ConflictDetector, ConflictResult
from slotforge.services.grid import Assignment, GridSnapshot, InstructorResolver, ScheduleGrid
from slotforge.services.periods import PeriodCalendar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotEdit:
    class_group_name: str
    day: str
    period_ordinal: int
    assignment: Assignment | None
    advisory: ConflictResult = NO_CONFLICT
    # True until the store tier has confirmed or corrected the advisory.
    provisional: bool = True


class EditingSession:
    """The set of grids one author edits together in a batch."""

    def __init__(
        self,
        term: str,
        calendar: PeriodCalendar,
        detector: ConflictDetector,
        *,
        resolver: InstructorResolver | None = None,
    ) -> None:
        self.term = term
        self.calendar = calendar
        self.detector = detector
        self.resolver = resolver
        self._grids: dict[str, ScheduleGrid] = {}

    def __contains__(self, class_group_name: object) -> bool:
        return class_group_name in self._grids

    @property
    def grids(self) -> list[ScheduleGrid]:
        return list(self._grids.values())

    def open_grid(self, class_group_name: str, snapshot: GridSnapshot | None = None) -> ScheduleGrid:
        if snapshot is not None:
            grid = ScheduleGrid.from_snapshot(snapshot, self.calendar, resolver=self.resolver)
        else:
            grid = ScheduleGrid(class_group_name, self.term, self.calendar, resolver=self.resolver)
        self._grids[class_group_name] = grid
        return grid

    def grid(self, class_group_name: str) -> ScheduleGrid:
        grid = self._grids.get(class_group_name)
        if grid is None:
            raise ResourceNotFoundError("Schedule grid", class_group_name)
        return grid

    def _session_advisory(self, grid: ScheduleGrid, day: str, period_ordinal: int) -> ConflictResult:
        assignment = grid.get(day, period_ordinal)
        if assignment is None or assignment.instructor_id is None:
            return NO_CONFLICT
        period = self.calendar.get(period_ordinal)
        result = self.detector.check_session(
            assignment.instructor_id,
            day,
            period.start_time,
            period.end_time,
            grid.class_group_name,
            self._grids.values(),
        )
        if result.conflicting:
            grid.add_note(result.message)
        return result

    def set_slot(self, class_group_name: str, day: str, period_ordinal: int, subject: str) -> SlotEdit:
        grid = self.grid(class_group_name)
        assignment = grid.set_slot(day, period_ordinal, subject)
        day = self.calendar.require_day(day)
        return SlotEdit(
            class_group_name=class_group_name,
            day=day,
            period_ordinal=period_ordinal,
            assignment=assignment,
            advisory=self._session_advisory(grid, day, period_ordinal),
        )

    def assign_instructor(
        self,
        class_group_name: str,
        day: str,
        period_ordinal: int,
        instructor_id: str | None,
    ) -> SlotEdit:
        grid = self.grid(class_group_name)
        assignment = grid.assign_instructor(day, period_ordinal, instructor_id)
        day = self.calendar.require_day(day)
        return SlotEdit(
            class_group_name=class_group_name,
            day=day,
            period_ordinal=period_ordinal,
            assignment=assignment,
            advisory=self._session_advisory(grid, day, period_ordinal),
        )

    def clear_slot(self, class_group_name: str, day: str, period_ordinal: int) -> SlotEdit:
        grid = self.grid(class_group_name)
        grid.clear_slot(day, period_ordinal)
        return SlotEdit(
            class_group_name=class_group_name,
            day=self.calendar.require_day(day),
            period_ordinal=period_ordinal,
            assignment=None,
            provisional=False,
        )

    async def confirm(self, edit: SlotEdit) -> SlotEdit:
        """Run the store tier for an edit; its verdict replaces the provisional one."""
        if edit.assignment is None or edit.assignment.instructor_id is None:
            return replace(edit, provisional=False)
        period = self.calendar.get(edit.period_ordinal)
        authoritative = await self.detector.check_store(
            edit.assignment.instructor_id,
            edit.day,
            period.start_time,
            period.end_time,
            edit.class_group_name,
            term=self.term,
        )
        advisory = self.detector.reconcile(edit.advisory, authoritative)
        if advisory.conflicting:
            grid = self._grids.get(edit.class_group_name)
            if grid is not None:
                grid.add_note(advisory.message)
            if grid is not None and grid.status == GridStatus.published:
                logger.info(
                    "TIMETABLE EDIT CONFLICT ON PUBLISHED GRID | class_group=%s | day=%s | period=%s | other=%s",
                    edit.class_group_name,
                    edit.day,
                    edit.period_ordinal,
                    advisory.conflicting_class_group,
                )
        return replace(edit, advisory=advisory, provisional=False)
