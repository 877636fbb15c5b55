from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
import logging
import random
from typing import Iterable, Mapping, Protocol, Sequence, Union

from slotforge.models.timetable_entry import AssignmentSource
from slotforge.services.directory import InstructorDirectory, InstructorProfile
from slotforge.services.grid import GridSnapshot, ScheduleGrid, SlotKey
from slotforge.services.periods import PeriodCalendar
from slotforge.services.workload import (
    FULL_TIME_WEEKLY_PERIOD_CAP,
    PART_TIME_WEEKLY_PERIOD_CAP,
    count_periods,
    weekly_period_cap,
    workload_warnings,
)

logger = logging.getLogger(__name__)

# Deeper task lists fall straight through to the greedy pass.
MAX_RECURSIVE_TASKS = 600

BusyKey = tuple[str, str, int]


@dataclass(frozen=True)
class SubjectRequirement:
    name: str
    weekly_frequency: int = 3
    preferred_instructor_id: str | None = None


SubjectSpec = Union[str, SubjectRequirement]


@dataclass(frozen=True)
class PeriodTask:
    task_id: str
    class_group_name: str
    subject: str
    candidates: tuple[str, ...]
    specialist_ids: frozenset[str]


@dataclass(frozen=True)
class Placement:
    day: str
    period_ordinal: int
    instructor_id: str


@dataclass(frozen=True)
class GenerationProblem:
    days: tuple[str, ...]
    ordinals: tuple[int, ...]
    directory: InstructorDirectory
    busy: frozenset[BusyKey]
    weekly_caps: Mapping[str, int]
    max_subject_per_day: int = 2


@dataclass
class GenerationValidation:
    warnings: list[str] = field(default_factory=list)
    hard_constraints_satisfied: bool = True
    complete: bool = True
    unplaced: int = 0


@dataclass
class GenerationResult:
    grid: ScheduleGrid
    assignments: dict[SlotKey, str]
    validation: GenerationValidation


class GenerationStrategy(Protocol):
    def solve(self, tasks: Sequence[PeriodTask], problem: GenerationProblem) -> dict[str, Placement]:
        ...


class _SolverState:
    def __init__(self, problem: GenerationProblem) -> None:
        self.occupied: set[tuple[str, str, int]] = set()
        self.busy: set[BusyKey] = set(problem.busy)
        self.daily_subject: Counter[tuple[str, str, str]] = Counter()
        self.load: Counter[str] = Counter()

    def place(self, task: PeriodTask, option: Placement) -> None:
        self.occupied.add((task.class_group_name, option.day, option.period_ordinal))
        self.busy.add((option.instructor_id, option.day, option.period_ordinal))
        self.daily_subject[(task.class_group_name, option.day, task.subject)] += 1
        self.load[option.instructor_id] += 1

    def remove(self, task: PeriodTask, option: Placement) -> None:
        self.occupied.discard((task.class_group_name, option.day, option.period_ordinal))
        self.busy.discard((option.instructor_id, option.day, option.period_ordinal))
        self.daily_subject[(task.class_group_name, option.day, task.subject)] -= 1
        self.load[option.instructor_id] -= 1


class BacktrackingStrategy:
    """Bounded backtracking over period tasks, most constrained first.

    When the step budget runs out or no complete solution exists, a greedy
    pass places every task that still fits and leaves the rest unplaced.
    """

    def __init__(self, *, seed: int | None = None, max_backtracks: int = 20_000) -> None:
        self.seed = seed
        self.max_backtracks = max_backtracks
        self._steps = 0

    def solve(self, tasks: Sequence[PeriodTask], problem: GenerationProblem) -> dict[str, Placement]:
        rng = random.Random(self.seed)
        ordered = self._order(tasks, problem, rng)
        self._steps = 0

        state = _SolverState(problem)
        placements: dict[str, Placement] = {}
        if len(ordered) <= MAX_RECURSIVE_TASKS and self._search(ordered, 0, problem, state, placements, rng):
            return placements

        logger.info(
            "Auto-fill falling back to greedy placement | tasks=%s steps=%s budget=%s",
            len(ordered),
            self._steps,
            self.max_backtracks,
        )
        state = _SolverState(problem)
        placements = {}
        for task in ordered:
            options = self._options(task, problem, state, rng)
            if not options:
                continue
            state.place(task, options[0])
            placements[task.task_id] = options[0]
        return placements

    def _order(self, tasks: Sequence[PeriodTask], problem: GenerationProblem, rng: random.Random) -> list[PeriodTask]:
        def constraint_key(task: PeriodTask) -> tuple[int, int, float]:
            profiles = [problem.directory.get(candidate) for candidate in task.candidates]
            profiles = [profile for profile in profiles if profile is not None]
            only_part_time = bool(profiles) and all(profile.is_part_time for profile in profiles)
            open_days = sum(
                1 for day in problem.days if any(profile.is_available(day) for profile in profiles)
            )
            return (0 if only_part_time else 1, open_days, rng.random())

        return sorted(tasks, key=constraint_key)

    def _ranked_candidates(self, task: PeriodTask, problem: GenerationProblem, state: _SolverState) -> list[str]:
        def rank(instructor_id: str) -> tuple[int, int, int, int]:
            over_cap = state.load[instructor_id] >= problem.weekly_caps.get(instructor_id, FULL_TIME_WEEKLY_PERIOD_CAP)
            return (
                0 if instructor_id in task.specialist_ids else 1,
                1 if over_cap else 0,
                task.candidates.index(instructor_id),
                state.load[instructor_id],
            )

        return sorted(task.candidates, key=rank)

    def _options(
        self,
        task: PeriodTask,
        problem: GenerationProblem,
        state: _SolverState,
        rng: random.Random,
    ) -> list[Placement]:
        slots = [(day, ordinal) for day in problem.days for ordinal in problem.ordinals]
        rng.shuffle(slots)
        ranked = self._ranked_candidates(task, problem, state)
        options: list[Placement] = []
        for day, ordinal in slots:
            if (task.class_group_name, day, ordinal) in state.occupied:
                continue
            if state.daily_subject[(task.class_group_name, day, task.subject)] >= problem.max_subject_per_day:
                continue
            for instructor_id in ranked:
                profile = problem.directory.get(instructor_id)
                if profile is None or not profile.is_available(day):
                    continue
                if (instructor_id, day, ordinal) in state.busy:
                    continue
                options.append(Placement(day=day, period_ordinal=ordinal, instructor_id=instructor_id))
                break
        options.sort(key=lambda option: option.instructor_id not in task.specialist_ids)
        return options

    def _search(
        self,
        tasks: list[PeriodTask],
        index: int,
        problem: GenerationProblem,
        state: _SolverState,
        placements: dict[str, Placement],
        rng: random.Random,
    ) -> bool:
        if index >= len(tasks):
            return True
        task = tasks[index]
        for option in self._options(task, problem, state, rng):
            if self._steps >= self.max_backtracks:
                return False
            self._steps += 1
            state.place(task, option)
            placements[task.task_id] = option
            if self._search(tasks, index + 1, problem, state, placements, rng):
                return True
            state.remove(task, option)
            del placements[task.task_id]
        return False


def normalize_requirements(subjects: Iterable[SubjectSpec], weekly_frequency: int) -> list[SubjectRequirement]:
    requirements: list[SubjectRequirement] = []
    for subject in subjects:
        if isinstance(subject, SubjectRequirement):
            requirements.append(subject)
        else:
            requirements.append(SubjectRequirement(name=subject, weekly_frequency=weekly_frequency))
    return [item for item in requirements if item.name.strip() and item.weekly_frequency > 0]


class AutoFillGenerator:
    """Produces draft grids from subject requirements and an instructor pool.

    Hard constraints are re-checked after the strategy returns: any placement
    that books an instructor twice or on an unavailable day is dropped and
    counted as unplaced.
    """

    def __init__(
        self,
        calendar: PeriodCalendar,
        *,
        strategy: GenerationStrategy | None = None,
        weekly_frequency: int = 3,
        max_subject_per_day: int = 2,
        full_time_cap: int = FULL_TIME_WEEKLY_PERIOD_CAP,
        part_time_cap: int = PART_TIME_WEEKLY_PERIOD_CAP,
    ) -> None:
        self.calendar = calendar
        self.strategy = strategy or BacktrackingStrategy()
        self.weekly_frequency = weekly_frequency
        self.max_subject_per_day = max_subject_per_day
        self.full_time_cap = full_time_cap
        self.part_time_cap = part_time_cap

    def generate(
        self,
        class_group_name: str,
        subjects: Iterable[SubjectSpec],
        instructors: Iterable[InstructorProfile],
        days: Sequence[str],
        periods_per_day: int,
        *,
        term: str,
        open_grids: Iterable[GridSnapshot] = (),
        allow_non_specialists: bool = True,
    ) -> GenerationResult:
        results = self.generate_many(
            {class_group_name: list(subjects)},
            instructors,
            days,
            periods_per_day,
            term=term,
            open_grids=open_grids,
            allow_non_specialists=allow_non_specialists,
        )
        return results[class_group_name]

    def generate_many(
        self,
        class_groups: Mapping[str, Sequence[SubjectSpec]],
        instructors: Iterable[InstructorProfile],
        days: Sequence[str],
        periods_per_day: int,
        *,
        term: str,
        open_grids: Iterable[GridSnapshot] = (),
        allow_non_specialists: bool = True,
    ) -> dict[str, GenerationResult]:
        directory = InstructorDirectory(instructors)
        normalized_days = tuple(dict.fromkeys(self.calendar.require_day(day) for day in days))
        ordinals = tuple(self.calendar.teaching_ordinal(index) for index in range(periods_per_day))
        open_grids = [grid for grid in open_grids if grid.class_group_name not in class_groups]

        busy: set[BusyKey] = set()
        for snapshot in open_grids:
            for (day, ordinal), assignment in snapshot.filled_slots():
                if assignment.instructor_id:
                    busy.add((assignment.instructor_id, day, ordinal))

        problem = GenerationProblem(
            days=normalized_days,
            ordinals=ordinals,
            directory=directory,
            busy=frozenset(busy),
            weekly_caps={
                profile.instructor_id: weekly_period_cap(
                    profile, full_time_cap=self.full_time_cap, part_time_cap=self.part_time_cap
                )
                for profile in directory
            },
            max_subject_per_day=self.max_subject_per_day,
        )

        warnings: dict[str, list[str]] = defaultdict(list)
        tasks: list[PeriodTask] = []
        unstaffable: Counter[tuple[str, str]] = Counter()
        for class_group_name, subjects in class_groups.items():
            for requirement in normalize_requirements(subjects, self.weekly_frequency):
                candidates, specialists = self._candidates(requirement, directory, allow_non_specialists)
                if not specialists:
                    warnings[class_group_name].append(f"No specialist instructor teaches {requirement.name}")
                if not candidates:
                    unstaffable[(class_group_name, requirement.name)] += requirement.weekly_frequency
                    continue
                for index in range(requirement.weekly_frequency):
                    tasks.append(
                        PeriodTask(
                            task_id=f"{class_group_name}-{requirement.name}-{index}",
                            class_group_name=class_group_name,
                            subject=requirement.name,
                            candidates=candidates,
                            specialist_ids=specialists,
                        )
                    )

        placements = self.strategy.solve(tasks, problem)
        violations = self._verify(tasks, placements, problem)

        results: dict[str, GenerationResult] = {}
        unplaced: Counter[tuple[str, str]] = Counter(unstaffable)
        non_specialist: Counter[tuple[str, str, str]] = Counter()
        for class_group_name in class_groups:
            grid = ScheduleGrid(class_group_name, term, self.calendar)
            results[class_group_name] = GenerationResult(grid=grid, assignments={}, validation=GenerationValidation())

        for task in tasks:
            placement = placements.get(task.task_id)
            if placement is None or task.task_id in violations:
                unplaced[(task.class_group_name, task.subject)] += 1
                continue
            result = results[task.class_group_name]
            result.grid.set_slot(placement.day, placement.period_ordinal, task.subject)
            result.grid.assign_instructor(
                placement.day,
                placement.period_ordinal,
                placement.instructor_id,
                source=AssignmentSource.auto_resolved,
            )
            result.assignments[(placement.day, placement.period_ordinal)] = placement.instructor_id
            if placement.instructor_id not in task.specialist_ids:
                non_specialist[(task.class_group_name, task.subject, placement.instructor_id)] += 1

        for (class_group_name, subject), count in sorted(unplaced.items()):
            warnings[class_group_name].append(
                f"Could not place {count} period(s) of {subject}: no qualified instructor is free in a remaining slot"
            )
        for (class_group_name, subject, instructor_id), count in sorted(non_specialist.items()):
            warnings[class_group_name].append(
                f"{subject} is taught by non-specialist {directory.name_for(instructor_id)} for {count} period(s)"
            )

        load_counts = count_periods([*open_grids, *(result.grid.snapshot() for result in results.values())])
        overloaded = workload_warnings(
            load_counts, directory, full_time_cap=self.full_time_cap, part_time_cap=self.part_time_cap
        )

        # Dropped placements count as unplaced; the flag is checked on what is returned.
        kept = {task_id: placement for task_id, placement in placements.items() if task_id not in violations}
        residual = self._verify(tasks, kept, problem)
        dropped = Counter(task.class_group_name for task in tasks if task.task_id in violations)

        for class_group_name, result in results.items():
            validation = result.validation
            validation.warnings = [*warnings[class_group_name], *overloaded]
            validation.unplaced = sum(count for (group, _), count in unplaced.items() if group == class_group_name)
            validation.complete = validation.unplaced == 0
            validation.hard_constraints_satisfied = not any(
                task.class_group_name == class_group_name for task in tasks if task.task_id in residual
            )
            if dropped[class_group_name]:
                validation.warnings.append(
                    f"Removed {dropped[class_group_name]} placement(s) that broke a hard constraint"
                )
            for warning in validation.warnings:
                result.grid.add_note(warning)
        return results

    @staticmethod
    def _candidates(
        requirement: SubjectRequirement,
        directory: InstructorDirectory,
        allow_non_specialists: bool,
    ) -> tuple[tuple[str, ...], frozenset[str]]:
        specialists = [profile.instructor_id for profile in directory.specialists(requirement.name)]
        ordered: list[str] = []
        if requirement.preferred_instructor_id and requirement.preferred_instructor_id in directory:
            ordered.append(requirement.preferred_instructor_id)
        ordered.extend(sorted(specialists))
        if allow_non_specialists:
            ordered.extend(sorted(profile.instructor_id for profile in directory))
        return tuple(dict.fromkeys(ordered)), frozenset(specialists)

    @staticmethod
    def _verify(
        tasks: Sequence[PeriodTask],
        placements: Mapping[str, Placement],
        problem: GenerationProblem,
    ) -> set[str]:
        violations: set[str] = set()
        taken: set[BusyKey] = set(problem.busy)
        cells: set[tuple[str, str, int]] = set()
        for task in tasks:
            placement = placements.get(task.task_id)
            if placement is None:
                continue
            profile = problem.directory.get(placement.instructor_id)
            booking = (placement.instructor_id, placement.day, placement.period_ordinal)
            cell = (task.class_group_name, placement.day, placement.period_ordinal)
            if (
                profile is None
                or not profile.is_available(placement.day)
                or placement.day not in problem.days
                or placement.period_ordinal not in problem.ordinals
                or booking in taken
                or cell in cells
            ):
                violations.add(task.task_id)
                logger.warning(
                    "Auto-fill strategy produced an invalid placement | task=%s instructor=%s day=%s period=%s",
                    task.task_id,
                    placement.instructor_id,
                    placement.day,
                    placement.period_ordinal,
                )
                continue
            taken.add(booking)
            cells.add(cell)
        return violations
