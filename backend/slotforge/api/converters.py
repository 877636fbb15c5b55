from __future__ import annotations

from typing import Iterable

from slotforge.models.timetable_entry import AssignmentSource, GridStatus
from slotforge.schemas.timetable import (
    BatchResponse,
    ConflictResultOut,
    GridOutcomeOut,
    GridPayload,
    InstructorPayload,
    SlotPayload,
)
from slotforge.services.batch import BatchResult, GridOutcome
from slotforge.services.conflict_service import ConflictResult
from slotforge.services.directory import EmploymentMode, InstructorDirectory, InstructorProfile
from slotforge.services.grid import Assignment, GridSnapshot, ScheduleGrid
from slotforge.services.periods import PeriodCalendar


def snapshot_from_payload(payload: GridPayload, calendar: PeriodCalendar) -> GridSnapshot:
    """Build a validated snapshot; break slots and unknown days raise InvalidSlotError."""
    grid = grid_from_payload(payload, calendar)
    return grid.snapshot()


def grid_from_payload(payload: GridPayload, calendar: PeriodCalendar, *, resolver=None) -> ScheduleGrid:
    snapshot = GridSnapshot(
        class_group_name=payload.classGroupName,
        term=payload.term,
        status=GridStatus(payload.status),
        slots={
            (slot.day, slot.periodOrdinal): Assignment(
                subject=slot.subject.strip(),
                instructor_id=slot.instructorId or None,
                source=AssignmentSource(slot.source),
            )
            for slot in payload.slots
        },
        notes=payload.notes,
    )
    return ScheduleGrid.from_snapshot(snapshot, calendar, resolver=resolver)


def grid_to_payload(grid: ScheduleGrid | GridSnapshot) -> GridPayload:
    return GridPayload(
        classGroupName=grid.class_group_name,
        term=grid.term,
        status=grid.status.value,
        slots=[
            SlotPayload(
                day=day,
                periodOrdinal=period_ordinal,
                subject=assignment.subject,
                instructorId=assignment.instructor_id,
                source=assignment.source.value,
            )
            for (day, period_ordinal), assignment in grid.filled_slots()
        ],
        notes=list(grid.notes),
    )


def directory_from_payload(instructors: Iterable[InstructorPayload]) -> InstructorDirectory:
    return InstructorDirectory(profile_from_payload(item) for item in instructors)


def profile_from_payload(item: InstructorPayload) -> InstructorProfile:
    return InstructorProfile(
        instructor_id=item.id,
        name=item.name,
        employment_mode=EmploymentMode(item.employmentMode),
        available_days=frozenset(item.availableDays),
        specializations=frozenset(item.specializations),
        max_weekly_periods=item.maxWeeklyPeriods,
    )


def conflict_result_out(result: ConflictResult) -> ConflictResultOut:
    return ConflictResultOut(**result.to_dict())


def outcome_out(outcome: GridOutcome) -> GridOutcomeOut:
    return GridOutcomeOut(**outcome.to_dict())


def batch_response(result: BatchResult) -> BatchResponse:
    return BatchResponse(
        operation=result.operation,
        total=result.total,
        succeeded=result.succeeded,
        blocked=result.blocked,
        failed=result.failed,
        errors=result.errors,
        outcomes=[outcome_out(outcome) for outcome in result.outcomes],
    )
