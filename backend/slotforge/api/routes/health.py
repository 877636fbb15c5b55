from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from slotforge.api.deps import get_db
from slotforge.core.config import Settings, get_settings
from slotforge.core.exceptions import ConfigurationError
from slotforge.db.bootstrap import missing_schema
from slotforge.services.periods import PeriodCalendar

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _database_report(db: Session) -> dict:
    report: dict = {"ok": True, "schema_ok": False, "missing_tables": [], "missing_columns": {}, "error": None}
    try:
        connection = db.connection()
        connection.execute(text("SELECT 1"))
        report["missing_tables"], report["missing_columns"] = missing_schema(connection)
    except Exception as exc:  # pragma: no cover - environment dependent
        report["ok"] = False
        report["error"] = str(exc)
        return report
    report["schema_ok"] = not report["missing_tables"] and not report["missing_columns"]
    return report


def _calendar_report(settings: Settings) -> dict:
    try:
        calendar = PeriodCalendar.from_settings(settings)
    except ConfigurationError as exc:
        return {"ok": False, "error": exc.message}
    return {
        "ok": True,
        "days": len(calendar.days),
        "periods": len(calendar),
        "teaching_periods": len(calendar.teaching_periods),
        "error": None,
    }


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": _now()}


@router.get("/health/ready")
def health_ready(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> JSONResponse:
    database = _database_report(db)
    calendar = _calendar_report(settings)
    ready = database["ok"] and database["schema_ok"] and calendar["ok"]
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": _now(),
        "database": database,
        "calendar": calendar,
        "store": {
            "max_concurrency": settings.store_max_concurrency,
            "default_term": settings.default_term,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
