from fastapi import APIRouter, Depends

from slotforge.api.deps import get_calendar
from slotforge.schemas.timetable import CalendarOut, PeriodOut
from slotforge.services.periods import PeriodCalendar

router = APIRouter()


@router.get("/periods", response_model=CalendarOut)
def list_periods(calendar: PeriodCalendar = Depends(get_calendar)) -> CalendarOut:
    return CalendarOut(
        days=list(calendar.days),
        periods=[
            PeriodOut(
                ordinal=period.ordinal,
                name=period.name,
                startTime=period.start_time,
                endTime=period.end_time,
                isBreak=period.is_break,
            )
            for period in calendar
        ],
    )
