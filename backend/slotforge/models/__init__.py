from slotforge.models.activity_log import ActivityLog  # noqa: F401
from slotforge.models.notification import Notification, NotificationType  # noqa: F401
from slotforge.models.timetable_entry import (  # noqa: F401
    AssignmentSource,
    GridStatus,
    TimetableEntry,
)
