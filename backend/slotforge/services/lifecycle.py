from __future__ import annotations

import logging
from typing import Iterable

from slotforge.core.exceptions import BookingConstraintViolation, PublishConflictError, ResourceNotFoundError
from slotforge.models.timetable_entry import GridStatus
from slotforge.services.conflict_service import ConflictDetector, SlotConflict
from slotforge.services.grid import GridSnapshot
from slotforge.services.notifications import NotificationDispatcher
from slotforge.services.store import AssignmentStore

logger = logging.getLogger(__name__)


class LifecycleController:
    """Moves grids between draft and published.

    Publishing re-runs the conflict check against published records only.
    Any conflict blocks the grid; publication is never partial within a grid.
    """

    def __init__(
        self,
        store: AssignmentStore,
        detector: ConflictDetector,
        *,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.store = store
        self.detector = detector
        self.notifier = notifier

    async def save_draft(self, snapshot: GridSnapshot, *, actor_id: str | None = None) -> int:
        return await self.store.replace_grid(
            snapshot,
            status=snapshot.status,
            actor_id=actor_id,
            action="timetable.save",
        )

    async def validate_for_publish(
        self,
        snapshot: GridSnapshot,
        peers: Iterable[GridSnapshot] = (),
    ) -> list[SlotConflict]:
        conflicts = await self.detector.find_store_conflicts(
            snapshot,
            term=snapshot.term,
            statuses={GridStatus.published},
        )
        others = [
            peer
            for peer in peers
            if peer.term == snapshot.term and peer.class_group_name != snapshot.class_group_name
        ]
        if others:
            session_conflicts = self.detector.find_session_conflicts([snapshot, *others])
            conflicts.extend(item for item in session_conflicts if item.class_group_name == snapshot.class_group_name)

        unique: dict[tuple, SlotConflict] = {}
        for item in conflicts:
            unique.setdefault((item.day, item.period_ordinal, item.competing_class_group, item.source), item)
        return sorted(unique.values(), key=lambda item: (item.day, item.period_ordinal, item.competing_class_group))

    async def publish(
        self,
        snapshot: GridSnapshot,
        peers: Iterable[GridSnapshot] = (),
        *,
        actor_id: str | None = None,
        conflicts: list[SlotConflict] | None = None,
    ) -> GridSnapshot:
        if conflicts is None:
            conflicts = await self.validate_for_publish(snapshot, peers)
        if conflicts:
            logger.warning(
                "TIMETABLE PUBLISH BLOCKED | tenant=%s | term=%s | class_group=%s | conflicts=%s",
                self.store.tenant_id,
                snapshot.term,
                snapshot.class_group_name,
                len(conflicts),
            )
            raise PublishConflictError(snapshot.class_group_name, conflicts)

        try:
            await self.store.replace_grid(
                snapshot,
                status=GridStatus.published,
                actor_id=actor_id,
                action="timetable.publish",
            )
        except BookingConstraintViolation as exc:
            # Another publish won the race between validation and commit.
            late = await self.validate_for_publish(snapshot)
            logger.warning(
                "TIMETABLE PUBLISH LOST RACE | tenant=%s | term=%s | class_group=%s",
                self.store.tenant_id,
                snapshot.term,
                snapshot.class_group_name,
            )
            raise PublishConflictError(snapshot.class_group_name, late) from exc

        published = GridSnapshot(
            class_group_name=snapshot.class_group_name,
            term=snapshot.term,
            status=GridStatus.published,
            slots=snapshot.slots,
            notes=snapshot.notes,
        )
        logger.info(
            "TIMETABLE PUBLISHED | tenant=%s | term=%s | class_group=%s | slots=%s",
            self.store.tenant_id,
            published.term,
            published.class_group_name,
            len(published),
        )
        if self.notifier is not None:
            await self.notifier.grid_published(published)
        return published

    async def unpublish(self, class_group_name: str, term: str, *, actor_id: str | None = None) -> int:
        changed = await self.store.set_status(
            class_group_name,
            term,
            GridStatus.draft,
            actor_id=actor_id,
            action="timetable.unpublish",
        )
        if not changed:
            if await self.store.load_grid(class_group_name, term) is None:
                raise ResourceNotFoundError("Schedule grid", f"{term}:{class_group_name}")
            logger.info(
                "TIMETABLE UNPUBLISH SKIPPED | tenant=%s | term=%s | class_group=%s | reason=not published",
                self.store.tenant_id,
                term,
                class_group_name,
            )
            return 0
        logger.info(
            "TIMETABLE UNPUBLISHED | tenant=%s | term=%s | class_group=%s",
            self.store.tenant_id,
            term,
            class_group_name,
        )
        if self.notifier is not None:
            await self.notifier.grid_unpublished(class_group_name, term)
        return changed
