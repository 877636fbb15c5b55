from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from slotforge.api.converters import (
    batch_response,
    conflict_result_out,
    directory_from_payload,
    grid_from_payload,
    grid_to_payload,
    snapshot_from_payload,
)
from slotforge.api.deps import (
    build_batch_coordinator,
    build_detector,
    get_actor_id,
    get_lifecycle,
    get_notifier,
    get_store,
)
from slotforge.core.config import Settings, get_settings
from slotforge.core.exceptions import ResourceNotFoundError
from slotforge.models.timetable_entry import GridStatus
from slotforge.schemas.timetable import (
    BatchRequest,
    BatchResponse,
    ConflictCheckRequest,
    ConflictResultOut,
    EditRequest,
    EditResponse,
    GridPayload,
)
from slotforge.services.editing import EditingSession
from slotforge.services.grid import RotationPool
from slotforge.services.lifecycle import LifecycleController
from slotforge.services.notifications import NotificationDispatcher
from slotforge.services.store import AssignmentStore

router = APIRouter()


@router.get("/{class_group}", response_model=GridPayload)
async def get_timetable(
    class_group: str,
    term: str | None = Query(default=None, max_length=100),
    store: AssignmentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> GridPayload:
    term = term or settings.default_term
    snapshot = await store.load_grid(class_group, term)
    if snapshot is None:
        raise ResourceNotFoundError("Schedule grid", f"{term}:{class_group}")
    return grid_to_payload(snapshot)


@router.post("/edits", response_model=EditResponse)
async def apply_edit(
    payload: EditRequest,
    store: AssignmentStore = Depends(get_store),
) -> EditResponse:
    directory = directory_from_payload(payload.instructors)
    detector = build_detector(store, directory)
    session = EditingSession(payload.term, store.calendar, detector, resolver=RotationPool(directory))
    for grid_payload in payload.grids:
        if grid_payload.term != payload.term:
            continue
        session.open_grid(grid_payload.classGroupName, snapshot_from_payload(grid_payload, store.calendar))
    if payload.classGroupName not in session:
        stored = await store.load_grid(payload.classGroupName, payload.term)
        session.open_grid(payload.classGroupName, stored)

    if payload.action == "set_subject":
        edit = session.set_slot(payload.classGroupName, payload.day, payload.periodOrdinal, payload.subject or "")
    elif payload.action == "assign_instructor":
        edit = session.assign_instructor(
            payload.classGroupName,
            payload.day,
            payload.periodOrdinal,
            payload.instructorId or None,
        )
    else:
        edit = session.clear_slot(payload.classGroupName, payload.day, payload.periodOrdinal)

    edit = await session.confirm(edit)
    return EditResponse(
        grid=grid_to_payload(session.grid(payload.classGroupName)),
        advisory=conflict_result_out(edit.advisory),
        provisional=edit.provisional,
    )


@router.post("/conflicts/check", response_model=ConflictResultOut)
async def check_conflict(
    payload: ConflictCheckRequest,
    store: AssignmentStore = Depends(get_store),
) -> ConflictResultOut:
    detector = build_detector(store, directory_from_payload(payload.instructors))
    grids = [grid_from_payload(item, store.calendar) for item in payload.grids if item.term == payload.term]
    statuses = {GridStatus.published} if payload.scope == "publish" else None
    result = await detector.check_conflict(
        payload.instructorId,
        payload.day,
        payload.startTime,
        payload.endTime,
        payload.excludeClassGroup,
        term=payload.term,
        grids=grids,
        statuses=statuses,
    )
    return conflict_result_out(result)


@router.put("/batch", response_model=BatchResponse)
async def save_batch(
    payload: BatchRequest,
    store: AssignmentStore = Depends(get_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
    actor_id: str | None = Depends(get_actor_id),
) -> BatchResponse:
    snapshots = [snapshot_from_payload(item, store.calendar) for item in payload.grids]
    coordinator = build_batch_coordinator(store, notifier, directory_from_payload(payload.instructors))
    result = await coordinator.save(snapshots, actor_id=actor_id)
    if payload.strict:
        result.raise_for_failures()
    return batch_response(result)


@router.post("/batch/publish", response_model=BatchResponse)
async def publish_batch(
    payload: BatchRequest,
    store: AssignmentStore = Depends(get_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
    actor_id: str | None = Depends(get_actor_id),
) -> BatchResponse:
    snapshots = [snapshot_from_payload(item, store.calendar) for item in payload.grids]
    coordinator = build_batch_coordinator(store, notifier, directory_from_payload(payload.instructors))
    result = await coordinator.publish(snapshots, actor_id=actor_id)
    if payload.strict:
        result.raise_for_failures()
    return batch_response(result)


@router.post("/{class_group}/unpublish")
async def unpublish_timetable(
    class_group: str,
    term: str | None = Query(default=None, max_length=100),
    lifecycle: LifecycleController = Depends(get_lifecycle),
    actor_id: str | None = Depends(get_actor_id),
    settings: Settings = Depends(get_settings),
) -> dict:
    term = term or settings.default_term
    changed = await lifecycle.unpublish(class_group, term, actor_id=actor_id)
    return {
        "classGroupName": class_group,
        "term": term,
        "status": GridStatus.draft.value,
        "slots": changed,
    }
