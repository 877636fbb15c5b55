from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Sequence

import anyio

from slotforge.core.exceptions import AppError, PartialBatchFailure, PublishConflictError
from slotforge.services.conflict_service import SlotConflict
from slotforge.services.grid import GridSnapshot
from slotforge.services.lifecycle import LifecycleController
from slotforge.services.store import AssignmentStore

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["saved", "published", "blocked", "failed"]


@dataclass(frozen=True)
class GridOutcome:
    class_group_name: str
    term: str
    status: OutcomeStatus
    error: str | None = None
    conflicts: tuple[SlotConflict, ...] = ()
    slot_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status in ("saved", "published")

    def to_dict(self) -> dict:
        return {
            "classGroupName": self.class_group_name,
            "term": self.term,
            "status": self.status,
            "error": self.error,
            "conflicts": [item.to_dict() for item in self.conflicts],
            "slotCount": self.slot_count,
        }


@dataclass
class BatchResult:
    operation: str
    outcomes: list[GridOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def blocked(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "blocked")

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "failed")

    @property
    def errors(self) -> list[str]:
        return [f"{outcome.term}/{outcome.class_group_name}: {outcome.error}" for outcome in self.outcomes if outcome.error]

    def outcome_for(self, class_group_name: str, term: str) -> GridOutcome | None:
        for outcome in self.outcomes:
            if outcome.class_group_name == class_group_name and outcome.term == term:
                return outcome
        return None

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "total": self.total,
            "succeeded": self.succeeded,
            "blocked": self.blocked,
            "failed": self.failed,
            "errors": self.errors,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchFailure(self)


class BatchCoordinator:
    """Saves or publishes several grids, one transaction per grid."""

    def __init__(self, store: AssignmentStore, lifecycle: LifecycleController) -> None:
        self.store = store
        self.lifecycle = lifecycle

    async def save(self, grids: Sequence[GridSnapshot], *, actor_id: str | None = None) -> BatchResult:
        outcomes: list[GridOutcome | None] = [None] * len(grids)

        async def save_one(index: int, snapshot: GridSnapshot) -> None:
            try:
                count = await self.lifecycle.save_draft(snapshot, actor_id=actor_id)
            except AppError as exc:
                outcomes[index] = GridOutcome(snapshot.class_group_name, snapshot.term, "failed", error=exc.message)
            else:
                outcomes[index] = GridOutcome(snapshot.class_group_name, snapshot.term, "saved", slot_count=count)

        async with anyio.create_task_group() as tg:
            for index, snapshot in enumerate(grids):
                tg.start_soon(save_one, index, snapshot)

        result = BatchResult(operation="save", outcomes=[outcome for outcome in outcomes if outcome is not None])
        self._log(result)
        return result

    async def publish(self, grids: Sequence[GridSnapshot], *, actor_id: str | None = None) -> BatchResult:
        # Every grid is validated before any commit so peers see each other as drafts.
        verdicts: list[list[SlotConflict] | AppError | None] = [None] * len(grids)

        async def validate_one(index: int, snapshot: GridSnapshot) -> None:
            try:
                verdicts[index] = await self.lifecycle.validate_for_publish(snapshot, grids)
            except AppError as exc:
                verdicts[index] = exc

        async with anyio.create_task_group() as tg:
            for index, snapshot in enumerate(grids):
                tg.start_soon(validate_one, index, snapshot)

        outcomes: list[GridOutcome | None] = [None] * len(grids)
        for index, (snapshot, verdict) in enumerate(zip(grids, verdicts)):
            if isinstance(verdict, AppError):
                outcomes[index] = GridOutcome(
                    snapshot.class_group_name, snapshot.term, "failed", error=verdict.message
                )
            elif verdict:
                error = PublishConflictError(snapshot.class_group_name, verdict).message
                outcomes[index] = GridOutcome(
                    snapshot.class_group_name,
                    snapshot.term,
                    "blocked",
                    error=error,
                    conflicts=tuple(verdict),
                    slot_count=len(snapshot),
                )
                logger.warning(
                    "TIMETABLE PUBLISH BLOCKED | tenant=%s | term=%s | class_group=%s | conflicts=%s",
                    self.store.tenant_id,
                    snapshot.term,
                    snapshot.class_group_name,
                    len(verdict),
                )

        async def commit_one(index: int, snapshot: GridSnapshot) -> None:
            try:
                await self.lifecycle.publish(snapshot, actor_id=actor_id, conflicts=[])
            except PublishConflictError as exc:
                outcomes[index] = GridOutcome(
                    snapshot.class_group_name,
                    snapshot.term,
                    "blocked",
                    error=exc.message,
                    conflicts=tuple(exc.conflicts),
                    slot_count=len(snapshot),
                )
            except AppError as exc:
                outcomes[index] = GridOutcome(snapshot.class_group_name, snapshot.term, "failed", error=exc.message)
            else:
                outcomes[index] = GridOutcome(
                    snapshot.class_group_name, snapshot.term, "published", slot_count=len(snapshot)
                )

        async with anyio.create_task_group() as tg:
            for index, snapshot in enumerate(grids):
                if outcomes[index] is None:
                    tg.start_soon(commit_one, index, snapshot)

        result = BatchResult(operation="publish", outcomes=[outcome for outcome in outcomes if outcome is not None])
        self._log(result)
        return result

    def _log(self, result: BatchResult) -> None:
        level = logging.WARNING if result.failed or result.blocked else logging.INFO
        logger.log(
            level,
            "TIMETABLE BATCH %s | tenant=%s | total=%s | succeeded=%s | blocked=%s | failed=%s",
            result.operation.upper(),
            self.store.tenant_id,
            result.total,
            result.succeeded,
            result.blocked,
            result.failed,
        )
