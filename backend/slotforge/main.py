from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slotforge.api.routes import generator, health, notifications, periods, timetable
from slotforge.core.config import get_settings
from slotforge.core.exceptions import AppError
from slotforge.db.bootstrap import ensure_schema

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_schema(create=settings.auto_create_schema)
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(periods.router, prefix=settings.api_prefix, tags=["periods"])
app.include_router(timetable.router, prefix=f"{settings.api_prefix}/timetable", tags=["timetable"])
app.include_router(generator.router, prefix=settings.api_prefix, tags=["generator"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
