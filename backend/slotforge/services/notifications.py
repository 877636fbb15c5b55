from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
import logging
from typing import Callable

import anyio

from anyio import from_thread, to_thread
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from slotforge.models.notification import Notification, NotificationType
from slotforge.services.grid import GridSnapshot
from slotforge.services.notification_hub import notification_hub, topic_for

logger = logging.getLogger(__name__)


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_to_event_payload(notification: Notification, *, event: str = "timetable.published") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "class_group_name": notification.class_group_name,
            "term": notification.term,
            "title": notification.title,
            "message": notification.message,
            "notification_type": notification.notification_type.value,
            "created_at": _safe_iso(notification.created_at),
        },
    }


def publish_realtime_notification(notification: Notification, *, event: str = "timetable.published") -> None:
    payload = notification_to_event_payload(notification, event=event)
    topic = topic_for(notification.tenant_id, notification.class_group_name)
    try:
        from_thread.run(notification_hub.publish, topic, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime timetable event for %s", topic, exc_info=True)


def create_notification(
    db: Session,
    *,
    tenant_id: str,
    class_group_name: str,
    term: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.published,
) -> Notification:
    record = Notification(
        tenant_id=tenant_id,
        class_group_name=class_group_name,
        term=term,
        title=title,
        message=message,
        notification_type=notification_type,
    )
    db.add(record)
    db.flush()
    return record


def list_notifications(
    db: Session,
    *,
    tenant_id: str,
    class_group_name: str | None = None,
    limit: int = 50,
) -> list[Notification]:
    query = select(Notification).where(Notification.tenant_id == tenant_id)
    if class_group_name:
        query = query.where(Notification.class_group_name == class_group_name)
    query = query.order_by(Notification.created_at.desc(), Notification.id).limit(limit)
    return list(db.execute(query).scalars())


class NotificationDispatcher:
    """Fire-and-forget publication events for class-group members.

    Failures are logged and never reach the caller; delivery is not
    guaranteed.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        tenant_id: str,
        limiter_factory: Callable[[], anyio.CapacityLimiter] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.tenant_id = tenant_id
        # Share the store limiter so notification writes never race grid writes on one connection.
        self._limiter_factory = limiter_factory

    async def grid_published(self, snapshot: GridSnapshot) -> None:
        await self._dispatch(
            class_group_name=snapshot.class_group_name,
            term=snapshot.term,
            title="Timetable Published",
            message=(
                f"The {snapshot.term} timetable for {snapshot.class_group_name} is now live "
                f"with {len(snapshot)} scheduled period(s)."
            ),
            notification_type=NotificationType.published,
        )

    async def grid_unpublished(self, class_group_name: str, term: str) -> None:
        await self._dispatch(
            class_group_name=class_group_name,
            term=term,
            title="Timetable Withdrawn",
            message=f"The {term} timetable for {class_group_name} was withdrawn for revision.",
            notification_type=NotificationType.unpublished,
        )

    async def _dispatch(self, **kwargs) -> None:
        try:
            limiter = self._limiter_factory() if self._limiter_factory is not None else None
            await to_thread.run_sync(partial(self._record, **kwargs), limiter=limiter)
        except Exception:
            logger.exception(
                "TIMETABLE NOTIFICATION FAILED | tenant=%s | class_group=%s | term=%s",
                self.tenant_id,
                kwargs.get("class_group_name"),
                kwargs.get("term"),
            )

    def _record(
        self,
        *,
        class_group_name: str,
        term: str,
        title: str,
        message: str,
        notification_type: NotificationType,
    ) -> None:
        with self._session_factory() as db:
            record = create_notification(
                db,
                tenant_id=self.tenant_id,
                class_group_name=class_group_name,
                term=term,
                title=title,
                message=message,
                notification_type=notification_type,
            )
            db.commit()
            event = "timetable.published" if notification_type == NotificationType.published else "timetable.unpublished"
            publish_realtime_notification(record, event=event)
