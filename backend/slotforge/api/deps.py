from collections.abc import Generator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session, sessionmaker

from slotforge.core.config import Settings, get_settings
from slotforge.db.session import SessionLocal
from slotforge.services.batch import BatchCoordinator
from slotforge.services.conflict_service import ConflictDetector
from slotforge.services.directory import InstructorDirectory
from slotforge.services.lifecycle import LifecycleController
from slotforge.services.notifications import NotificationDispatcher
from slotforge.services.periods import PeriodCalendar
from slotforge.services.store import AssignmentStore


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_tenant_id(x_tenant_id: str | None = Header(default=None)) -> str:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Tenant-ID header is required")
    if len(tenant_id) > 36:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Tenant-ID header is too long")
    return tenant_id


def get_calendar(settings: Settings = Depends(get_settings)) -> PeriodCalendar:
    return PeriodCalendar.from_settings(settings)


def get_store(
    session_factory: sessionmaker = Depends(get_session_factory),
    tenant_id: str = Depends(get_tenant_id),
    calendar: PeriodCalendar = Depends(get_calendar),
    settings: Settings = Depends(get_settings),
) -> AssignmentStore:
    return AssignmentStore(
        session_factory,
        tenant_id=tenant_id,
        calendar=calendar,
        max_concurrency=settings.store_max_concurrency,
    )


def get_notifier(
    session_factory: sessionmaker = Depends(get_session_factory),
    store: AssignmentStore = Depends(get_store),
) -> NotificationDispatcher:
    return NotificationDispatcher(
        session_factory,
        tenant_id=store.tenant_id,
        limiter_factory=lambda: store.limiter,
    )


def build_detector(
    store: AssignmentStore,
    directory: InstructorDirectory | None = None,
) -> ConflictDetector:
    return ConflictDetector(store.calendar, store=store, directory=directory)


def build_lifecycle(
    store: AssignmentStore,
    notifier: NotificationDispatcher | None,
    directory: InstructorDirectory | None = None,
) -> LifecycleController:
    return LifecycleController(store, build_detector(store, directory), notifier=notifier)


def build_batch_coordinator(
    store: AssignmentStore,
    notifier: NotificationDispatcher | None,
    directory: InstructorDirectory | None = None,
) -> BatchCoordinator:
    return BatchCoordinator(store, build_lifecycle(store, notifier, directory))


def get_lifecycle(
    store: AssignmentStore = Depends(get_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> LifecycleController:
    return build_lifecycle(store, notifier)


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
    actor_id = (x_actor_id or "").strip()
    return actor_id[:36] or None
