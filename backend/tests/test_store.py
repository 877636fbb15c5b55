import pytest
from sqlalchemy import func, select

from slotforge.core.exceptions import BookingConstraintViolation
from slotforge.models.activity_log import ActivityLog
from slotforge.models.timetable_entry import AssignmentSource, GridStatus, TimetableEntry
from slotforge.services.grid import ScheduleGrid
from slotforge.services.store import AssignmentStore

TENANT = "tenant-1"
TERM = "First Term"

pytestmark = pytest.mark.anyio


@pytest.fixture()
def store(session_factory, calendar):
    return AssignmentStore(session_factory, tenant_id=TENANT, calendar=calendar)


def _count_rows(session_factory, **filters) -> int:
    query = select(func.count()).select_from(TimetableEntry)
    for name, value in filters.items():
        query = query.where(getattr(TimetableEntry, name) == value)
    with session_factory() as db:
        return db.execute(query).scalar_one()


async def test_round_trip_preserves_every_slot(calendar, store):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    for day in calendar.days:
        for period in calendar.teaching_periods[:3]:
            grid.set_slot(day, period.ordinal, "Math")
    grid.assign_instructor("Friday", 0, "wilson", source=AssignmentSource.auto_resolved)

    saved = await store.replace_grid(grid.snapshot(), status=GridStatus.draft)
    loaded = await store.load_grid("Grade5A", TERM)

    assert saved == 15
    assert loaded.filled_slots() == grid.snapshot().filled_slots()
    assert loaded.slots[("Friday", 0)].source == AssignmentSource.auto_resolved
    assert loaded.status == GridStatus.draft


async def test_save_is_idempotent(calendar, store, session_factory):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    grid.set_slot("Monday", 0, "Math")
    grid.set_slot("Monday", 1, "Science")

    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)
    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)

    assert _count_rows(session_factory, class_group_name="Grade5A") == 2


async def test_cleared_slots_are_removed_on_save(calendar, store):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    grid.set_slot("Monday", 0, "Math")
    grid.set_slot("Monday", 1, "Science")
    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)

    grid.clear_slot("Monday", 1)
    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)

    loaded = await store.load_grid("Grade5A", TERM)
    assert list(loaded.slots) == [("Monday", 0)]


async def test_load_missing_grid_returns_none(store):
    assert await store.load_grid("Nope", TERM) is None


async def test_tenants_are_isolated(calendar, store, session_factory):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    grid.set_slot("Monday", 0, "Math")
    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)
    other = AssignmentStore(session_factory, tenant_id="tenant-2", calendar=calendar)

    assert await other.load_grid("Grade5A", TERM) is None
    assert await other.list_class_groups(TERM) == []


async def test_published_double_booking_is_rejected_atomically(calendar, store, session_factory):
    first = ScheduleGrid("Grade5A", TERM, calendar)
    first.set_slot("Monday", 0, "Math")
    first.assign_instructor("Monday", 0, "wilson")
    await store.replace_grid(first.snapshot(), status=GridStatus.published)

    previous = ScheduleGrid("Grade5B", TERM, calendar)
    previous.set_slot("Tuesday", 2, "Art")
    await store.replace_grid(previous.snapshot(), status=GridStatus.draft)

    second = ScheduleGrid("Grade5B", TERM, calendar)
    second.set_slot("Monday", 0, "Math")
    second.assign_instructor("Monday", 0, "wilson")
    with pytest.raises(BookingConstraintViolation):
        await store.replace_grid(second.snapshot(), status=GridStatus.published)

    # The failed write left the earlier draft untouched.
    loaded = await store.load_grid("Grade5B", TERM)
    assert list(loaded.slots) == [("Tuesday", 2)]
    assert loaded.status == GridStatus.draft


async def test_drafts_may_double_book(calendar, store, session_factory):
    for name in ("Grade5A", "Grade5B"):
        grid = ScheduleGrid(name, TERM, calendar)
        grid.set_slot("Monday", 0, "Math")
        grid.assign_instructor("Monday", 0, "wilson")
        await store.replace_grid(grid.snapshot(), status=GridStatus.draft)

    assert _count_rows(session_factory, instructor_id="wilson") == 2


async def test_set_status_and_activity_log(calendar, store, session_factory):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    grid.set_slot("Monday", 0, "Math")
    await store.replace_grid(grid.snapshot(), status=GridStatus.published, actor_id="admin")

    changed = await store.set_status("Grade5A", TERM, GridStatus.draft, actor_id="admin", action="timetable.unpublish")

    assert changed == 1
    assert await store.list_class_groups(TERM, GridStatus.published) == []
    assert await store.list_class_groups(TERM, GridStatus.draft) == ["Grade5A"]
    with session_factory() as db:
        actions = list(db.execute(select(ActivityLog.action).order_by(ActivityLog.created_at)).scalars())
    assert sorted(actions) == ["timetable.save", "timetable.unpublish"]


async def test_set_status_skips_rows_already_in_that_status(calendar, store, session_factory):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    grid.set_slot("Monday", 0, "Math")
    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)

    changed = await store.set_status("Grade5A", TERM, GridStatus.draft, action="timetable.unpublish")

    assert changed == 0
    with session_factory() as db:
        actions = list(db.execute(select(ActivityLog.action)).scalars())
    assert actions == ["timetable.save"]


async def test_find_bookings_filters(calendar, store):
    grid = ScheduleGrid("Grade5A", TERM, calendar)
    grid.set_slot("Monday", 0, "Math")
    grid.assign_instructor("Monday", 0, "wilson")
    grid.set_slot("Tuesday", 0, "Math")
    grid.assign_instructor("Tuesday", 0, "wilson")
    await store.replace_grid(grid.snapshot(), status=GridStatus.draft)

    monday = await store.find_bookings(term=TERM, instructor_ids=["wilson"], days=["Monday"])
    excluded = await store.find_bookings(term=TERM, instructor_ids=["wilson"], exclude_class_groups=["Grade5A"])
    published = await store.find_bookings(term=TERM, instructor_ids=["wilson"], statuses=[GridStatus.published])

    assert [(item.day, item.start_time) for item in monday] == [("Monday", "09:00")]
    assert excluded == []
    assert published == []
