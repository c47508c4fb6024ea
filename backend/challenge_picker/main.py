"""FastAPI application entry point."""

import asyncio
import math
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from challenge_picker.config import settings
from challenge_picker.db.database import Base, engine
from challenge_picker.db.redis import close_redis
from challenge_picker.errors import ConcurrentModification, InternalError, PickerError, ValidationError
from challenge_picker.logging_config import configure_logging
from challenge_picker.middleware.logging_middleware import RequestLoggingMiddleware

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    # Startup: create tables (dev only; use migrations in production)
    import challenge_picker.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    worker_task = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        from challenge_picker.worker.reconcile_worker import reconcile_worker_loop

        worker_task = asyncio.create_task(reconcile_worker_loop())
    try:
        yield
    finally:
        if worker_task is not None:
            worker_task.cancel()
            await asyncio.gather(worker_task, return_exceptions=True)
        # Shutdown: close connections
        await engine.dispose()
        await close_redis()


app = FastAPI(
    title="Challenge Picker API",
    description="Rule engine for challenge-picker streaming sessions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: restrict to the overlay and dashboard origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# --- Error envelope ---


def _error_response(error: PickerError) -> JSONResponse:
    headers = None
    seconds = getattr(error, "seconds_remaining", None)
    if seconds is not None:
        headers = {"Retry-After": str(max(1, math.ceil(seconds)))}
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.to_dict()},
        headers=headers,
    )


@app.exception_handler(PickerError)
async def picker_error_handler(request: Request, exc: PickerError):
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error_response(ValidationError("Invalid request", details=jsonable_encoder(exc.errors())))


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    log.warning("playthrough_version_conflict", path=request.url.path)
    return _error_response(ConcurrentModification())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.error("unhandled_error", method=request.method, path=request.url.path, exc_info=exc)
    return _error_response(InternalError())


# --- Routes ---
from challenge_picker.api.routes import catalog, playthrough, playthroughs, stream_deck  # noqa: E402

app.include_router(catalog.router, prefix="/api/catalog", tags=["catalog"])
app.include_router(playthroughs.router, prefix="/api/playthroughs", tags=["playthroughs"])
app.include_router(stream_deck.router, prefix="/api/playthrough/stream-deck", tags=["stream-deck"])
app.include_router(playthrough.router, prefix="/api/playthrough", tags=["playthrough"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
