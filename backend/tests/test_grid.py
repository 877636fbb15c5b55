import pytest

from slotforge.core.config import DEFAULT_PERIOD_CALENDAR
from slotforge.core.exceptions import EmptySlotError, InvalidSlotError
from slotforge.models.timetable_entry import AssignmentSource, GridStatus
from slotforge.services.grid import Assignment, GridSnapshot, RotationPool, ScheduleGrid
from slotforge.services.periods import WEEKDAYS, PeriodCalendar


def test_clear_slot_removes_subject_and_instructor(calendar):
    grid = ScheduleGrid("Grade5A", "First Term", calendar)
    grid.set_slot("Monday", 0, "Math")
    grid.assign_instructor("Monday", 0, "wilson")

    removed = grid.clear_slot("Monday", 0)

    assert removed == Assignment("Math", "wilson")
    assert grid.get("Monday", 0) is None
    assert len(grid) == 0


def test_clear_slot_is_idempotent(calendar):
    grid = ScheduleGrid("Grade5A", "First Term", calendar)
    grid.set_slot("Monday", 0, "Math")
    grid.clear_slot("Monday", 0)
    before = grid.snapshot()

    assert grid.clear_slot("Monday", 0) is None
    assert grid.snapshot() == before


BREAK_SLOTS = [
    (day, period.ordinal)
    for day in WEEKDAYS
    for period in PeriodCalendar.from_entries(DEFAULT_PERIOD_CALENDAR).periods
    if period.is_break
]


def test_default_calendar_has_breaks():
    assert {ordinal for _, ordinal in BREAK_SLOTS} == {3, 6}


@pytest.mark.parametrize("day,ordinal", BREAK_SLOTS)
def test_break_slots_never_hold_assignments(calendar, day, ordinal):
    grid = ScheduleGrid("Grade5A", "First Term", calendar)
    with pytest.raises(InvalidSlotError):
        grid.set_slot(day, ordinal, "Math")
    with pytest.raises(InvalidSlotError):
        grid.assign_instructor(day, ordinal, "wilson")
    assert grid.get(day, ordinal) is None
    assert len(grid) == 0


def test_instructor_requires_subject(calendar):
    grid = ScheduleGrid("Grade5A", "First Term", calendar)
    with pytest.raises(EmptySlotError):
        grid.assign_instructor("Monday", 0, "wilson")
    with pytest.raises(InvalidSlotError):
        Assignment(subject="", instructor_id="wilson")
    assert grid.get("Monday", 0) is None


def test_empty_subject_is_rejected(calendar):
    grid = ScheduleGrid("Grade5A", "First Term", calendar)
    grid.set_slot("Monday", 0, "Math")
    with pytest.raises(InvalidSlotError):
        grid.set_slot("Monday", 0, "   ")
    assert grid.get("Monday", 0).subject == "Math"


def test_set_slot_resolves_instructor_from_rotation(calendar, directory):
    grid = ScheduleGrid("Grade5A", "First Term", calendar, resolver=RotationPool(directory))

    assignment = grid.set_slot("Monday", 0, "Math")

    assert assignment.instructor_id == "wilson"
    assert assignment.source == AssignmentSource.auto_resolved
    assert assignment.is_auto_resolved


def test_set_slot_keeps_existing_instructor(calendar, directory):
    grid = ScheduleGrid("Grade5A", "First Term", calendar, resolver=RotationPool(directory))
    grid.set_slot("Monday", 0, "Math")
    grid.assign_instructor("Monday", 0, "garcia")

    assignment = grid.set_slot("Monday", 0, "Science")

    assert assignment == Assignment("Science", "garcia", AssignmentSource.explicit)


def test_unavailable_specialist_is_not_resolved(calendar, directory):
    grid = ScheduleGrid("Grade5A", "First Term", calendar, resolver=RotationPool(directory))

    assignment = grid.set_slot("Tuesday", 0, "Art")

    assert assignment.instructor_id is None
    assert assignment.source == AssignmentSource.explicit


def test_unassign_keeps_subject(calendar):
    grid = ScheduleGrid("Grade5A", "First Term", calendar)
    grid.set_slot("Monday", 0, "Math")
    grid.assign_instructor("Monday", 0, "wilson")

    grid.assign_instructor("Monday", 0, None)

    assert grid.get("Monday", 0) == Assignment("Math", None)


def test_snapshot_is_immutable_copy(calendar):
    grid = ScheduleGrid("Grade5A", "First Term", calendar, status=GridStatus.published)
    grid.set_slot("Mon", 1, "Math")
    snapshot = grid.snapshot()

    grid.clear_slot("Monday", 1)

    assert snapshot.status == GridStatus.published
    assert snapshot.filled_slots() == [(("Monday", 1), Assignment("Math"))]
    with pytest.raises(TypeError):
        snapshot.slots[("Monday", 2)] = Assignment("Art")


def test_from_snapshot_rejects_break_slots(calendar):
    snapshot = GridSnapshot("Grade5A", "First Term", slots={("Monday", 3): Assignment("Math")})
    with pytest.raises(InvalidSlotError):
        ScheduleGrid.from_snapshot(snapshot, calendar)
