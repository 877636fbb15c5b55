from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from slotforge.services.periods import DAY_SHORT_MAP, DAY_VALUES, TIME_PATTERN

AVAILABILITY_VALUES = set(DAY_VALUES) | set(DAY_SHORT_MAP)


def _validate_day(value: str) -> str:
    cleaned = value.strip()
    if cleaned not in AVAILABILITY_VALUES:
        raise ValueError(f"Invalid day: {value}")
    return DAY_SHORT_MAP.get(cleaned, cleaned)


class SlotPayload(BaseModel):
    day: str
    periodOrdinal: int = Field(ge=0, le=100)
    subject: str = Field(min_length=1, max_length=200)
    instructorId: str | None = Field(default=None, max_length=36)
    source: Literal["explicit", "auto_resolved"] = "explicit"

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return _validate_day(value)


class GridPayload(BaseModel):
    classGroupName: str = Field(min_length=1, max_length=100)
    term: str = Field(min_length=1, max_length=100)
    status: Literal["draft", "published"] = "draft"
    slots: list[SlotPayload] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_slots(self) -> "GridPayload":
        seen: set[tuple[str, int]] = set()
        for slot in self.slots:
            key = (slot.day, slot.periodOrdinal)
            if key in seen:
                raise ValueError(f"Duplicate slot {slot.day} period {slot.periodOrdinal} in {self.classGroupName}")
            seen.add(key)
        return self


class InstructorPayload(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    employmentMode: Literal["full_time", "part_time"] = "full_time"
    availableDays: list[str] = Field(default_factory=list, max_length=14)
    specializations: list[str] = Field(default_factory=list)
    maxWeeklyPeriods: int | None = Field(default=None, ge=0, le=100)

    @field_validator("availableDays")
    @classmethod
    def validate_available_days(cls, value: list[str]) -> list[str]:
        cleaned = [day.strip() for day in value if day.strip()]
        invalid = [day for day in cleaned if day not in AVAILABILITY_VALUES]
        if invalid:
            raise ValueError(f"Invalid availability day(s): {', '.join(invalid)}")
        return cleaned


class ConflictResultOut(BaseModel):
    conflicting: bool
    conflictingClassGroup: str | None = None
    message: str | None = None
    source: Literal["session", "store"] | None = None


class SlotConflictOut(BaseModel):
    classGroupName: str
    day: str
    periodOrdinal: int
    startTime: str
    endTime: str
    subject: str
    instructorId: str
    competingClassGroup: str
    source: Literal["session", "store"]
    message: str


class EditRequest(BaseModel):
    term: str = Field(min_length=1, max_length=100)
    classGroupName: str = Field(min_length=1, max_length=100)
    action: Literal["set_subject", "assign_instructor", "clear"]
    day: str
    periodOrdinal: int = Field(ge=0, le=100)
    subject: str | None = Field(default=None, max_length=200)
    instructorId: str | None = Field(default=None, max_length=36)
    grids: list[GridPayload] = Field(default_factory=list)
    instructors: list[InstructorPayload] = Field(default_factory=list)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return _validate_day(value)

    @model_validator(mode="after")
    def validate_action_fields(self) -> "EditRequest":
        if self.action == "set_subject" and not (self.subject or "").strip():
            raise ValueError("subject is required for set_subject")
        return self


class EditResponse(BaseModel):
    grid: GridPayload
    advisory: ConflictResultOut
    provisional: bool = False


class ConflictCheckRequest(BaseModel):
    term: str = Field(min_length=1, max_length=100)
    instructorId: str = Field(min_length=1, max_length=36)
    day: str
    startTime: str
    endTime: str
    excludeClassGroup: str | None = None
    scope: Literal["draft", "publish"] = "draft"
    grids: list[GridPayload] = Field(default_factory=list)
    instructors: list[InstructorPayload] = Field(default_factory=list)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return _validate_day(value)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_interval(self) -> "ConflictCheckRequest":
        if self.startTime >= self.endTime:
            raise ValueError("startTime must be before endTime")
        return self


class BatchRequest(BaseModel):
    grids: list[GridPayload] = Field(min_length=1, max_length=200)
    instructors: list[InstructorPayload] = Field(default_factory=list)
    strict: bool = False

    @model_validator(mode="after")
    def validate_unique_grids(self) -> "BatchRequest":
        keys = [(grid.term, grid.classGroupName) for grid in self.grids]
        if len(keys) != len(set(keys)):
            raise ValueError("Each class group may appear only once per batch")
        return self


class GridOutcomeOut(BaseModel):
    classGroupName: str
    term: str
    status: Literal["saved", "published", "blocked", "failed"]
    error: str | None = None
    conflicts: list[SlotConflictOut] = Field(default_factory=list)
    slotCount: int = 0


class BatchResponse(BaseModel):
    operation: Literal["save", "publish"]
    total: int
    succeeded: int
    blocked: int
    failed: int
    errors: list[str] = Field(default_factory=list)
    outcomes: list[GridOutcomeOut] = Field(default_factory=list)


class SubjectPayload(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    weeklyFrequency: int | None = Field(default=None, ge=1, le=40)
    preferredInstructorId: str | None = Field(default=None, max_length=36)


class ClassGroupRequest(BaseModel):
    classGroupName: str = Field(min_length=1, max_length=100)
    subjects: list[SubjectPayload] = Field(min_length=1)


class AutoFillRequest(BaseModel):
    term: str = Field(min_length=1, max_length=100)
    classGroups: list[ClassGroupRequest] = Field(min_length=1, max_length=50)
    instructors: list[InstructorPayload] = Field(min_length=1)
    days: list[str] = Field(default_factory=list, max_length=7)
    periodsPerDay: int | None = Field(default=None, ge=1, le=20)
    openGrids: list[GridPayload] = Field(default_factory=list)
    allowNonSpecialists: bool = True
    seed: int | None = None

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: list[str]) -> list[str]:
        return [_validate_day(day) for day in value if day.strip()]

    @model_validator(mode="after")
    def validate_unique_class_groups(self) -> "AutoFillRequest":
        names = [group.classGroupName for group in self.classGroups]
        if len(names) != len(set(names)):
            raise ValueError("Each class group may appear only once")
        return self


class GenerationValidationOut(BaseModel):
    warnings: list[str] = Field(default_factory=list)
    hardConstraintsSatisfied: bool = True
    complete: bool = True
    unplaced: int = 0


class AutoFillResult(BaseModel):
    grid: GridPayload
    # Keyed "<Day>-<periodOrdinal>".
    assignments: dict[str, str] = Field(default_factory=dict)
    validation: GenerationValidationOut


class AutoFillResponse(BaseModel):
    results: list[AutoFillResult]


class PeriodOut(BaseModel):
    ordinal: int
    name: str
    startTime: str
    endTime: str
    isBreak: bool


class CalendarOut(BaseModel):
    days: list[str]
    periods: list[PeriodOut]
