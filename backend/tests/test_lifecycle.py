import pytest
from sqlalchemy import select

from slotforge.core.exceptions import (
    PartialBatchFailure,
    PersistenceError,
    PublishConflictError,
    ResourceNotFoundError,
)
from slotforge.models.notification import Notification, NotificationType
from slotforge.models.timetable_entry import GridStatus, TimetableEntry
from slotforge.services.batch import BatchCoordinator
from slotforge.services.conflict_service import ConflictDetector
from slotforge.services.grid import GridSnapshot, ScheduleGrid
from slotforge.services.lifecycle import LifecycleController
from slotforge.services.notifications import NotificationDispatcher
from slotforge.services.store import AssignmentStore

TENANT = "tenant-1"
TERM = "First Term"

pytestmark = pytest.mark.anyio


@pytest.fixture()
def store(session_factory, calendar):
    return AssignmentStore(session_factory, tenant_id=TENANT, calendar=calendar)


@pytest.fixture()
def lifecycle(store, calendar, directory, session_factory):
    notifier = NotificationDispatcher(session_factory, tenant_id=TENANT, limiter_factory=lambda: store.limiter)
    detector = ConflictDetector(calendar, store=store, directory=directory)
    return LifecycleController(store, detector, notifier=notifier)


@pytest.fixture()
def coordinator(store, lifecycle):
    return BatchCoordinator(store, lifecycle)


def _snapshot(
    calendar,
    name,
    bookings=(("Monday", 0, "Math", "wilson"),),
    status=GridStatus.draft,
    term=TERM,
) -> GridSnapshot:
    grid = ScheduleGrid(name, term, calendar, status=status)
    for day, ordinal, subject, instructor in bookings:
        grid.set_slot(day, ordinal, subject)
        grid.assign_instructor(day, ordinal, instructor)
    return grid.snapshot()


def _published_rows(session_factory) -> list[tuple[str, str, str, int]]:
    query = select(
        TimetableEntry.class_group_name,
        TimetableEntry.instructor_id,
        TimetableEntry.day,
        TimetableEntry.period_ordinal,
    ).where(TimetableEntry.status == GridStatus.published)
    with session_factory() as db:
        return [tuple(row) for row in db.execute(query)]


async def test_conflicting_drafts_are_all_saved(calendar, coordinator, store):
    grids = [_snapshot(calendar, "Grade5A"), _snapshot(calendar, "Grade5B")]

    result = await coordinator.save(grids)

    assert (result.succeeded, result.failed) == (2, 0)
    assert [outcome.status for outcome in result.outcomes] == ["saved", "saved"]
    result.raise_for_failures()
    for name in ("Grade5A", "Grade5B"):
        assert (await store.load_grid(name, TERM)).status == GridStatus.draft


async def test_publish_blocks_both_sides_of_a_batch_conflict(calendar, coordinator, session_factory):
    grids = [_snapshot(calendar, "Grade5A"), _snapshot(calendar, "Grade5B")]

    result = await coordinator.publish(grids)

    assert result.blocked == 2
    assert result.succeeded == 0
    cited = {outcome.class_group_name: outcome.conflicts[0].competing_class_group for outcome in result.outcomes}
    assert cited == {"Grade5A": "Grade5B", "Grade5B": "Grade5A"}
    assert _published_rows(session_factory) == []


async def test_publish_is_per_grid(calendar, coordinator, session_factory):
    grids = [
        _snapshot(calendar, "Grade5A"),
        _snapshot(calendar, "Grade5B"),
        _snapshot(calendar, "Grade6A", bookings=(("Monday", 0, "Science", "garcia"),)),
    ]

    result = await coordinator.publish(grids)

    assert result.outcome_for("Grade6A", TERM).status == "published"
    assert result.outcome_for("Grade5A", TERM).status == "blocked"
    assert _published_rows(session_factory) == [("Grade6A", "garcia", "Monday", 0)]


async def test_publish_against_published_records(calendar, lifecycle, session_factory):
    await lifecycle.publish(_snapshot(calendar, "Grade5A"))

    with pytest.raises(PublishConflictError) as excinfo:
        await lifecycle.publish(_snapshot(calendar, "Grade5B"))

    assert excinfo.value.status_code == 409
    assert [item.competing_class_group for item in excinfo.value.conflicts] == ["Grade5A"]
    assert excinfo.value.conflicts[0].source == "store"
    assert _published_rows(session_factory) == [("Grade5A", "wilson", "Monday", 0)]


async def test_draft_records_do_not_block_publish(calendar, lifecycle, store):
    await lifecycle.save_draft(_snapshot(calendar, "Grade5A"))

    published = await lifecycle.publish(_snapshot(calendar, "Grade5B"))

    assert published.status == GridStatus.published
    assert (await store.load_grid("Grade5B", TERM)).status == GridStatus.published


async def test_republishing_own_grid_is_not_a_conflict(calendar, lifecycle, session_factory):
    await lifecycle.publish(_snapshot(calendar, "Grade5A"))
    edited = _snapshot(
        calendar,
        "Grade5A",
        bookings=(("Monday", 0, "Math", "wilson"), ("Monday", 1, "Science", "garcia")),
        status=GridStatus.published,
    )

    await lifecycle.save_draft(edited)

    assert len(_published_rows(session_factory)) == 2


async def test_unpublish_keeps_slots_and_notifies(calendar, lifecycle, store, session_factory):
    await lifecycle.publish(_snapshot(calendar, "Grade5A"))

    changed = await lifecycle.unpublish("Grade5A", TERM, actor_id="admin")

    loaded = await store.load_grid("Grade5A", TERM)
    assert changed == 1
    assert loaded.status == GridStatus.draft
    assert len(loaded) == 1
    with session_factory() as db:
        kinds = sorted(item.notification_type.value for item in db.execute(select(Notification)).scalars())
    assert kinds == [NotificationType.published.value, NotificationType.unpublished.value]


async def test_unpublish_unknown_grid(lifecycle):
    with pytest.raises(ResourceNotFoundError):
        await lifecycle.unpublish("Nope", TERM)


async def test_publish_writes_notification_per_class_group(calendar, coordinator, session_factory):
    grids = [
        _snapshot(calendar, "Grade5A"),
        _snapshot(calendar, "Grade6A", bookings=(("Monday", 0, "Science", "garcia"),)),
    ]

    await coordinator.publish(grids)

    with session_factory() as db:
        names = sorted(item.class_group_name for item in db.execute(select(Notification)).scalars())
    assert names == ["Grade5A", "Grade6A"]


async def test_failed_grid_is_reported_without_stopping_the_batch(calendar, coordinator, store, monkeypatch):
    original = store._replace_grid

    def flaky(snapshot, status, actor_id, action):
        if snapshot.class_group_name == "Grade5B":
            raise PersistenceError(snapshot.class_group_name, "disk full")
        return original(snapshot, status, actor_id, action)

    monkeypatch.setattr(store, "_replace_grid", flaky)
    grids = [
        _snapshot(calendar, "Grade5A"),
        _snapshot(calendar, "Grade5B", bookings=(("Tuesday", 0, "Math", "wilson"),)),
    ]

    result = await coordinator.save(grids)

    assert (result.succeeded, result.failed) == (1, 1)
    assert result.errors == [f"{TERM}/Grade5B: disk full"]
    with pytest.raises(PartialBatchFailure) as excinfo:
        result.raise_for_failures()
    assert excinfo.value.status_code == 207
    assert excinfo.value.details["failed"] == 1


async def test_batch_peers_from_another_term_do_not_conflict(calendar, coordinator, session_factory):
    grids = [
        _snapshot(calendar, "Grade5A"),
        _snapshot(calendar, "Grade5B", term="Second Term"),
    ]

    result = await coordinator.publish(grids)

    assert (result.succeeded, result.blocked) == (2, 0)
    assert sorted(_published_rows(session_factory)) == [
        ("Grade5A", "wilson", "Monday", 0),
        ("Grade5B", "wilson", "Monday", 0),
    ]


async def test_same_class_group_in_two_terms_keeps_separate_outcomes(calendar, coordinator):
    grids = [
        _snapshot(calendar, "Grade5A"),
        _snapshot(calendar, "Grade5A", term="Second Term"),
        _snapshot(calendar, "Grade5B", term="Second Term"),
    ]

    result = await coordinator.publish(grids)

    assert result.outcome_for("Grade5A", TERM).status == "published"
    assert result.outcome_for("Grade5A", "Second Term").status == "blocked"
    assert result.outcome_for("Grade5A", "Third Term") is None
    assert [outcome.term for outcome in result.outcomes] == [TERM, "Second Term", "Second Term"]


async def test_unpublishing_a_draft_is_a_no_op(calendar, lifecycle, store, session_factory):
    await lifecycle.save_draft(_snapshot(calendar, "Grade5A"))

    changed = await lifecycle.unpublish("Grade5A", TERM)

    assert changed == 0
    assert (await store.load_grid("Grade5A", TERM)).status == GridStatus.draft
    with session_factory() as db:
        assert list(db.execute(select(Notification)).scalars()) == []
