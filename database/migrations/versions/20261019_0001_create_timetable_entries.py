"""create timetable entries, notifications and activity logs

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

grid_status = sa.Enum("draft", "published", name="grid_status")
assignment_source = sa.Enum("explicit", "auto_resolved", name="assignment_source")
notification_type = sa.Enum("published", "unpublished", name="notification_type")

PUBLISHED_ONLY = sa.text("status = 'published'")


def upgrade() -> None:
    op.create_table(
        "timetable_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("term", sa.String(length=100), nullable=False),
        sa.Column("class_group_name", sa.String(length=100), nullable=False),
        sa.Column("day", sa.String(length=10), nullable=False),
        sa.Column("period_ordinal", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), nullable=True),
        sa.Column("assignment_source", assignment_source, nullable=False),
        sa.Column("status", grid_status, nullable=False),
        sa.Column("updated_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_timetable_entries_grid",
        "timetable_entries",
        ["tenant_id", "term", "class_group_name"],
    )
    op.create_index(
        "ix_timetable_entries_instructor_day",
        "timetable_entries",
        ["tenant_id", "term", "instructor_id", "day"],
    )
    op.create_index(
        "uq_timetable_entries_published_booking",
        "timetable_entries",
        ["tenant_id", "term", "instructor_id", "day", "period_ordinal"],
        unique=True,
        sqlite_where=PUBLISHED_ONLY,
        postgresql_where=PUBLISHED_ONLY,
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("class_group_name", sa.String(length=100), nullable=False),
        sa.Column("term", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
    op.create_index("ix_notifications_class_group_name", "notifications", ["class_group_name"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=200), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_tenant_id", "activity_logs", ["tenant_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_tenant_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_class_group_name", table_name="notifications")
    op.drop_index("ix_notifications_tenant_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_timetable_entries_published_booking", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_instructor_day", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_grid", table_name="timetable_entries")
    op.drop_table("timetable_entries")
    notification_type.drop(op.get_bind(), checkfirst=True)
    grid_status.drop(op.get_bind(), checkfirst=True)
    assignment_source.drop(op.get_bind(), checkfirst=True)
