import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import engcoach.models as _models  # noqa: F401 - registers tables with SQLModel metadata
from engcoach.config import get_settings
from engcoach.database import create_db_and_tables
from engcoach.errors import NotFoundError, PersistenceError, SessionError, ValidationError
from engcoach.routers import exercises, measurements, workout_sessions
from engcoach.services.session_registry import get_registry

log = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_db_and_tables()
    yield
    get_registry().clear()


app = FastAPI(title="Engcoach", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id_and_log(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = req_id
    log.info(
        "rid=%s %s %s -> %s in %.1fms",
        req_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "method": exc.method, "missing": exc.missing},
    )


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


app.include_router(measurements.router, prefix="/api", tags=["measurements"])
app.include_router(exercises.router, prefix="/api/exercises", tags=["exercises"])
app.include_router(
    workout_sessions.router,
    prefix="/api/athletes/{athlete_id}/workouts/{workout_id}/session",
    tags=["workout-sessions"],
)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
