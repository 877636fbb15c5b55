from __future__ import annotations

from collections import Counter
from typing import Iterable

from slotforge.services.directory import EmploymentMode, InstructorDirectory, InstructorProfile
from slotforge.services.grid import GridSnapshot

FULL_TIME_WEEKLY_PERIOD_CAP = 30
PART_TIME_WEEKLY_PERIOD_CAP = 15


def employment_mode_period_cap(
    mode: EmploymentMode,
    *,
    full_time_cap: int = FULL_TIME_WEEKLY_PERIOD_CAP,
    part_time_cap: int = PART_TIME_WEEKLY_PERIOD_CAP,
) -> int:
    if mode == EmploymentMode.part_time:
        return part_time_cap
    return full_time_cap


def weekly_period_cap(
    profile: InstructorProfile,
    *,
    full_time_cap: int = FULL_TIME_WEEKLY_PERIOD_CAP,
    part_time_cap: int = PART_TIME_WEEKLY_PERIOD_CAP,
) -> int:
    cap = employment_mode_period_cap(profile.employment_mode, full_time_cap=full_time_cap, part_time_cap=part_time_cap)
    if profile.max_weekly_periods is None:
        return cap
    if profile.max_weekly_periods < 1:
        return 1
    return min(profile.max_weekly_periods, cap)


def count_periods(snapshots: Iterable[GridSnapshot]) -> Counter[str]:
    counts: Counter[str] = Counter()
    for snapshot in snapshots:
        for _, assignment in snapshot.filled_slots():
            if assignment.instructor_id:
                counts[assignment.instructor_id] += 1
    return counts


def workload_warnings(
    counts: Counter[str],
    directory: InstructorDirectory,
    *,
    full_time_cap: int = FULL_TIME_WEEKLY_PERIOD_CAP,
    part_time_cap: int = PART_TIME_WEEKLY_PERIOD_CAP,
) -> list[str]:
    warnings: list[str] = []
    for instructor_id, total in sorted(counts.items()):
        profile = directory.get(instructor_id)
        if profile is None:
            continue
        cap = weekly_period_cap(profile, full_time_cap=full_time_cap, part_time_cap=part_time_cap)
        if total > cap:
            warnings.append(f"{profile.name} is scheduled for {total} periods per week (limit {cap})")
    return warnings
