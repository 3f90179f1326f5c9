# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.errors import InternalError, SchedulingError
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware
from app.db.sql import engine, init_models
from app.routers import availability, health, slots

configure_logging()
logger = logging.getLogger(__name__)


# Define lifespan event
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create missing tables on startup (migrations own the schema in prod)
    and release pooled connections on shutdown.
    """
    if settings.APP_ENV != "prod":
        await init_models()
    logger.info("Scheduling API started (env=%s)", settings.APP_ENV)
    yield
    await engine.dispose()


app = FastAPI(
    title="Provider Availability & Slot Scheduling API",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Routing
app.include_router(health.router, prefix=settings.API_PREFIX, tags=["health"])
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(slots.router, prefix=settings.API_PREFIX)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "-")


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if isinstance(exc, InternalError):
        logger.error("Internal error: %s", exc.message)
        return JSONResponse(
            status_code=exc.http_status,
            content={"detail": "internal_error", "request_id": _request_id(request)},
        )
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_detail()})


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "internal_error", "request_id": _request_id(request)},
    )


@app.get("/")
def root():
    return {"message": "Scheduling API running successfully"}
