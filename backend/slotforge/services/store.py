from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Iterable, TypeVar

import anyio
from anyio import to_thread
from sqlalchemy import delete, distinct, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from slotforge.core.exceptions import BookingConstraintViolation, PersistenceError
from slotforge.models.timetable_entry import AssignmentSource, GridStatus, TimetableEntry
from slotforge.services.audit import log_activity
from slotforge.services.grid import Assignment, GridSnapshot
from slotforge.services.periods import PeriodCalendar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StoredAssignment:
    term: str
    class_group_name: str
    day: str
    period_ordinal: int
    start_time: str
    end_time: str
    subject: str
    instructor_id: str | None
    source: AssignmentSource
    status: GridStatus

    @classmethod
    def from_entry(cls, entry: TimetableEntry) -> "StoredAssignment":
        return cls(
            term=entry.term,
            class_group_name=entry.class_group_name,
            day=entry.day,
            period_ordinal=entry.period_ordinal,
            start_time=entry.start_time,
            end_time=entry.end_time,
            subject=entry.subject,
            instructor_id=entry.instructor_id,
            source=entry.assignment_source,
            status=entry.status,
        )


class AssignmentStore:
    """Tenant-scoped access to persisted assignment records.

    Every public method is a coroutine; the blocking SQLAlchemy work runs in a
    worker thread with its own session, bounded by a capacity limiter.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        tenant_id: str,
        calendar: PeriodCalendar,
        max_concurrency: int = 1,
    ) -> None:
        self._session_factory = session_factory
        self.tenant_id = tenant_id
        self.calendar = calendar
        self._max_concurrency = max(1, max_concurrency)
        self._limiter: anyio.CapacityLimiter | None = None

    @property
    def limiter(self) -> anyio.CapacityLimiter:
        # Created lazily so it binds to the running event loop.
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self._max_concurrency)
        return self._limiter

    async def _run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        return await to_thread.run_sync(partial(fn, *args, **kwargs), limiter=self.limiter)

    def _grid_filter(self, term: str, class_group_name: str) -> tuple:
        return (
            TimetableEntry.tenant_id == self.tenant_id,
            TimetableEntry.term == term,
            TimetableEntry.class_group_name == class_group_name,
        )

    # -- reads -----------------------------------------------------------

    async def find_bookings(
        self,
        *,
        term: str,
        instructor_ids: Iterable[str],
        days: Iterable[str] | None = None,
        exclude_class_groups: Iterable[str] = (),
        statuses: Iterable[GridStatus] | None = None,
    ) -> list[StoredAssignment]:
        return await self._run(
            self._find_bookings,
            term=term,
            instructor_ids=sorted(set(instructor_ids)),
            days=sorted(set(days)) if days is not None else None,
            exclude_class_groups=sorted(set(exclude_class_groups)),
            statuses=list(statuses) if statuses is not None else None,
        )

    def _find_bookings(
        self,
        *,
        term: str,
        instructor_ids: list[str],
        days: list[str] | None,
        exclude_class_groups: list[str],
        statuses: list[GridStatus] | None,
    ) -> list[StoredAssignment]:
        if not instructor_ids:
            return []
        query = select(TimetableEntry).where(
            TimetableEntry.tenant_id == self.tenant_id,
            TimetableEntry.term == term,
            TimetableEntry.instructor_id.in_(instructor_ids),
        )
        if days is not None:
            query = query.where(TimetableEntry.day.in_(days))
        if exclude_class_groups:
            query = query.where(TimetableEntry.class_group_name.not_in(exclude_class_groups))
        if statuses is not None:
            query = query.where(TimetableEntry.status.in_(statuses))
        query = query.order_by(TimetableEntry.class_group_name, TimetableEntry.day, TimetableEntry.period_ordinal)
        with self._session_factory() as db:
            return [StoredAssignment.from_entry(entry) for entry in db.execute(query).scalars()]

    async def load_grid(self, class_group_name: str, term: str) -> GridSnapshot | None:
        return await self._run(self._load_grid, class_group_name, term)

    def _load_grid(self, class_group_name: str, term: str) -> GridSnapshot | None:
        query = select(TimetableEntry).where(*self._grid_filter(term, class_group_name))
        with self._session_factory() as db:
            entries = list(db.execute(query).scalars())
        if not entries:
            return None
        status = (
            GridStatus.published
            if any(entry.status == GridStatus.published for entry in entries)
            else GridStatus.draft
        )
        slots = {
            (entry.day, entry.period_ordinal): Assignment(
                subject=entry.subject,
                instructor_id=entry.instructor_id,
                source=entry.assignment_source,
            )
            for entry in entries
        }
        return GridSnapshot(class_group_name=class_group_name, term=term, status=status, slots=slots)

    async def list_class_groups(self, term: str, status: GridStatus | None = None) -> list[str]:
        return await self._run(self._list_class_groups, term, status)

    def _list_class_groups(self, term: str, status: GridStatus | None) -> list[str]:
        query = select(distinct(TimetableEntry.class_group_name)).where(
            TimetableEntry.tenant_id == self.tenant_id,
            TimetableEntry.term == term,
        )
        if status is not None:
            query = query.where(TimetableEntry.status == status)
        with self._session_factory() as db:
            return sorted(db.execute(query).scalars())

    # -- writes ----------------------------------------------------------

    async def replace_grid(
        self,
        snapshot: GridSnapshot,
        *,
        status: GridStatus,
        actor_id: str | None = None,
        action: str = "timetable.save",
    ) -> int:
        return await self._run(self._replace_grid, snapshot, status, actor_id, action)

    def _build_entries(self, snapshot: GridSnapshot, status: GridStatus, actor_id: str | None) -> list[TimetableEntry]:
        entries: list[TimetableEntry] = []
        for (day, period_ordinal), assignment in snapshot.filled_slots():
            period = self.calendar.get(period_ordinal)
            entries.append(
                TimetableEntry(
                    tenant_id=self.tenant_id,
                    term=snapshot.term,
                    class_group_name=snapshot.class_group_name,
                    day=day,
                    period_ordinal=period_ordinal,
                    start_time=period.start_time,
                    end_time=period.end_time,
                    subject=assignment.subject,
                    instructor_id=assignment.instructor_id,
                    assignment_source=assignment.source,
                    status=status,
                    updated_by=actor_id,
                )
            )
        return entries

    def _replace_grid(
        self,
        snapshot: GridSnapshot,
        status: GridStatus,
        actor_id: str | None,
        action: str,
    ) -> int:
        entries = self._build_entries(snapshot, status, actor_id)
        with self._session_factory() as db:
            try:
                # Delete and insert share one transaction so a failed insert keeps the old rows.
                db.execute(delete(TimetableEntry).where(*self._grid_filter(snapshot.term, snapshot.class_group_name)))
                db.add_all(entries)
                log_activity(
                    db,
                    tenant_id=self.tenant_id,
                    actor_id=actor_id,
                    action=action,
                    entity_type="schedule_grid",
                    entity_id=f"{snapshot.term}:{snapshot.class_group_name}",
                    details={"status": status.value, "slots": len(entries)},
                )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise BookingConstraintViolation(
                    snapshot.class_group_name,
                    f"Store rejected a published double booking for {snapshot.class_group_name}",
                    details={"term": snapshot.term},
                ) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception(
                    "TIMETABLE STORE WRITE FAILED | tenant=%s | term=%s | class_group=%s | action=%s",
                    self.tenant_id,
                    snapshot.term,
                    snapshot.class_group_name,
                    action,
                )
                raise PersistenceError(
                    snapshot.class_group_name,
                    f"Could not persist grid {snapshot.class_group_name}: {exc.__class__.__name__}",
                    details={"term": snapshot.term},
                ) from exc
        return len(entries)

    async def set_status(
        self,
        class_group_name: str,
        term: str,
        status: GridStatus,
        *,
        actor_id: str | None = None,
        action: str = "timetable.status",
    ) -> int:
        return await self._run(self._set_status, class_group_name, term, status, actor_id, action)

    def _set_status(
        self,
        class_group_name: str,
        term: str,
        status: GridStatus,
        actor_id: str | None,
        action: str,
    ) -> int:
        with self._session_factory() as db:
            try:
                result = db.execute(
                    update(TimetableEntry)
                    .where(*self._grid_filter(term, class_group_name), TimetableEntry.status != status)
                    .values(status=status)
                )
                changed = result.rowcount or 0
                if changed:
                    log_activity(
                        db,
                        tenant_id=self.tenant_id,
                        actor_id=actor_id,
                        action=action,
                        entity_type="schedule_grid",
                        entity_id=f"{term}:{class_group_name}",
                        details={"status": status.value, "slots": changed},
                    )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise BookingConstraintViolation(
                    class_group_name,
                    f"Store rejected a published double booking for {class_group_name}",
                    details={"term": term},
                ) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception(
                    "TIMETABLE STATUS UPDATE FAILED | tenant=%s | term=%s | class_group=%s",
                    self.tenant_id,
                    term,
                    class_group_name,
                )
                raise PersistenceError(
                    class_group_name,
                    f"Could not update status of {class_group_name}: {exc.__class__.__name__}",
                    details={"term": term},
                ) from exc
        return changed
