import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from slotforge.db.base import Base


class GridStatus(str, Enum):
    draft = "draft"
    published = "published"


class AssignmentSource(str, Enum):
    explicit = "explicit"
    auto_resolved = "auto_resolved"


PUBLISHED_ONLY = text("status = 'published'")


class TimetableEntry(Base):
    """One non-empty slot of a class group's grid for a term."""

    __tablename__ = "timetable_entries"
    __table_args__ = (
        Index("ix_timetable_entries_grid", "tenant_id", "term", "class_group_name"),
        Index("ix_timetable_entries_instructor_day", "tenant_id", "term", "instructor_id", "day"),
        # At most one published class group per instructor, day and period.
        Index(
            "uq_timetable_entries_published_booking",
            "tenant_id",
            "term",
            "instructor_id",
            "day",
            "period_ordinal",
            unique=True,
            sqlite_where=PUBLISHED_ONLY,
            postgresql_where=PUBLISHED_ONLY,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    term: Mapped[str] = mapped_column(String(100), nullable=False)
    class_group_name: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[str] = mapped_column(String(10), nullable=False)
    period_ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    instructor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    assignment_source: Mapped[AssignmentSource] = mapped_column(
        SAEnum(AssignmentSource, name="assignment_source"),
        nullable=False,
        default=AssignmentSource.explicit,
    )
    status: Mapped[GridStatus] = mapped_column(
        SAEnum(GridStatus, name="grid_status"),
        nullable=False,
        default=GridStatus.draft,
    )
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
