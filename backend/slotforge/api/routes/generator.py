from __future__ import annotations

from functools import partial
import logging
from time import perf_counter

from anyio import to_thread
from fastapi import APIRouter, Depends

from slotforge.api.converters import grid_to_payload, profile_from_payload, snapshot_from_payload
from slotforge.api.deps import get_store
from slotforge.core.config import Settings, get_settings
from slotforge.models.timetable_entry import GridStatus
from slotforge.schemas.timetable import (
    AutoFillRequest,
    AutoFillResponse,
    AutoFillResult,
    GenerationValidationOut,
)
from slotforge.services.generator import AutoFillGenerator, BacktrackingStrategy, SubjectRequirement
from slotforge.services.grid import GridSnapshot
from slotforge.services.store import AssignmentStore

logger = logging.getLogger(__name__)

router = APIRouter()


async def _published_grids(store: AssignmentStore, term: str, exclude: set[str]) -> list[GridSnapshot]:
    snapshots: list[GridSnapshot] = []
    for class_group_name in await store.list_class_groups(term, GridStatus.published):
        if class_group_name in exclude:
            continue
        snapshot = await store.load_grid(class_group_name, term)
        if snapshot is not None:
            snapshots.append(snapshot)
    return snapshots


@router.post("/generator/auto-fill", response_model=AutoFillResponse)
async def auto_fill(
    payload: AutoFillRequest,
    store: AssignmentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AutoFillResponse:
    calendar = store.calendar
    requested = {group.classGroupName for group in payload.classGroups}
    open_grids = [snapshot_from_payload(item, calendar) for item in payload.openGrids if item.term == payload.term]
    open_names = {item.class_group_name for item in open_grids}
    # Published grids already occupy their instructors.
    open_grids.extend(await _published_grids(store, payload.term, requested | open_names))

    generator = AutoFillGenerator(
        calendar,
        strategy=BacktrackingStrategy(
            seed=payload.seed if payload.seed is not None else settings.generator_seed,
            max_backtracks=settings.generator_max_backtracks,
        ),
        weekly_frequency=settings.generator_weekly_frequency,
        max_subject_per_day=settings.generator_max_subject_per_day,
        full_time_cap=settings.full_time_weekly_period_cap,
        part_time_cap=settings.part_time_weekly_period_cap,
    )
    class_groups = {
        group.classGroupName: [
            SubjectRequirement(
                name=subject.name.strip(),
                weekly_frequency=subject.weeklyFrequency or settings.generator_weekly_frequency,
                preferred_instructor_id=subject.preferredInstructorId,
            )
            for subject in group.subjects
        ]
        for group in payload.classGroups
    }
    days = payload.days or list(calendar.days)
    periods_per_day = payload.periodsPerDay or len(calendar.teaching_periods)

    started = perf_counter()
    results = await to_thread.run_sync(
        partial(
            generator.generate_many,
            class_groups,
            [profile_from_payload(item) for item in payload.instructors],
            days,
            periods_per_day,
            term=payload.term,
            open_grids=open_grids,
            allow_non_specialists=payload.allowNonSpecialists,
        )
    )
    logger.info(
        "TIMETABLE AUTO-FILL | tenant=%s | term=%s | class_groups=%s | elapsed_ms=%.1f",
        store.tenant_id,
        payload.term,
        len(class_groups),
        (perf_counter() - started) * 1000,
    )

    return AutoFillResponse(
        results=[
            AutoFillResult(
                grid=grid_to_payload(result.grid),
                assignments={f"{day}-{ordinal}": instructor_id for (day, ordinal), instructor_id in result.assignments.items()},
                validation=GenerationValidationOut(
                    warnings=result.validation.warnings,
                    hardConstraintsSatisfied=result.validation.hard_constraints_satisfied,
                    complete=result.validation.complete,
                    unplaced=result.validation.unplaced,
                ),
            )
            for result in (results[name] for name in class_groups)
        ]
    )
