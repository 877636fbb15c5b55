class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class InvalidSlotError(AppError):
    """Raised when a mutation targets a break period or a slot outside the calendar."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class EmptySlotError(AppError):
    """Raised when an instructor is assigned to a slot that has no subject."""
    def __init__(self, day: str, period_ordinal: int):
        super().__init__(
            f"Slot {day} period {period_ordinal} has no subject; assign a subject before an instructor",
            status_code=400,
            details={"day": day, "periodOrdinal": period_ordinal},
        )

class PublishConflictError(AppError):
    """Raised when a grid fails the authoritative conflict check at publish time."""
    def __init__(self, class_group_name: str, conflicts: list):
        self.class_group_name = class_group_name
        self.conflicts = list(conflicts)
        competing = sorted({item.competing_class_group for item in self.conflicts})
        super().__init__(
            f"Cannot publish {class_group_name}: {len(self.conflicts)} conflicting slot(s) with {', '.join(competing)}",
            status_code=409,
            details={
                "classGroupName": class_group_name,
                "conflicts": [item.to_dict() for item in self.conflicts],
            },
        )

class PersistenceError(AppError):
    """Raised when the storage layer fails for one grid."""
    def __init__(self, class_group_name: str, message: str, details: dict = None):
        self.class_group_name = class_group_name
        super().__init__(message, status_code=500, details={"classGroupName": class_group_name, **(details or {})})

class BookingConstraintViolation(PersistenceError):
    """Raised when the store rejects a published double booking."""

class PartialBatchFailure(AppError):
    """Raised when some grids of a batch operation failed."""
    def __init__(self, result):
        self.result = result
        super().__init__(
            f"{result.failed} of {result.total} grid(s) failed during {result.operation}",
            status_code=207,
            details=result.to_dict(),
        )

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
