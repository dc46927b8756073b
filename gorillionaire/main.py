from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gorillionaire import __version__
from gorillionaire.api import api_router
from gorillionaire.clients.notifier import telegram_notifier
from gorillionaire.core.config import settings
from gorillionaire.core.database import DatabaseUnavailable, db
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.core.logger import Logger
from gorillionaire.core.sentry import capture_exception, flush, init_sentry
from gorillionaire.services.jobs import register_jobs
from gorillionaire.services.realtime import ws_hub
from gorillionaire.services.scheduler import scheduler

logger = Logger("Main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Gorillionaire signals server...")
    init_sentry()

    # A configured but unreachable database aborts startup so the supervisor retries
    await db.connect()

    if settings.ENABLE_JOBS:
        if not scheduler.jobs:
            register_jobs(scheduler)
        await scheduler.start()
    else:
        logger.info("Background jobs disabled")

    yield

    # Shutdown
    logger.info("🛑 Shutting down...")
    await scheduler.stop()
    await ws_hub.close_all()
    await telegram_notifier.close()
    await db.disconnect()
    flush()


app = FastAPI(lifespan=lifespan, title="Gorillionaire Signals API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# Error rendering
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def business_rule_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(DatabaseUnavailable)
async def database_unavailable_handler(request: Request, exc: DatabaseUnavailable):
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc)
    capture_exception(exc, component="api", path=request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})


app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "version": __version__,
        "database": db.pool is not None,
        "redis": db.redis is not None,
        "websockets": ws_hub.connection_count,
        "jobs": scheduler.status(),
    }
