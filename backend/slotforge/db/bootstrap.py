from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

import slotforge.models  # noqa: F401
from slotforge.db.base import Base
from slotforge.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "timetable_entries": {
        "id",
        "tenant_id",
        "term",
        "class_group_name",
        "day",
        "period_ordinal",
        "subject",
        "instructor_id",
        "assignment_source",
        "status",
    },
    "notifications": {"id", "tenant_id", "class_group_name", "notification_type"},
    "activity_logs": {"id", "tenant_id", "action"},
}


def missing_schema(connection: Connection) -> tuple[list[str], dict[str, list[str]]]:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
    missing_columns: dict[str, list[str]] = {}
    for table_name, required in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(required - existing)
        if missing:
            missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_schema(bind: Engine | None = None, *, create: bool = True) -> None:
    bind = bind or default_engine
    try:
        if create:
            Base.metadata.create_all(bind=bind)
        with bind.connect() as connection:
            missing_tables, missing_columns = missing_schema(connection)
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
        if missing_columns:
            flat = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
            raise RuntimeError(f"Missing required columns: {', '.join(flat)}")
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Schema bootstrap failed")
        raise RuntimeError("Schema bootstrap failed") from exc
