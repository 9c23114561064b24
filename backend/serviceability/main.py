"""Application entry point for the pincode serviceability service."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from serviceability.api.routes.merchants import router as merchants_router
from serviceability.core.config import settings
from serviceability.core.db import SessionLocal, create_tables, engine
from serviceability.core.logging import setup_logging
from serviceability.core.middleware import BodySizeLimitMiddleware, RequestContextLogMiddleware
from serviceability.core.rate_limit import init_rate_limiter
from serviceability.core.redis_client import close_redis_client, get_redis_client, ping_redis

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)

init_rate_limiter(app)

app.add_middleware(RequestContextLogMiddleware)


def _cors_origins() -> list[str]:
    if settings.ENV == "prod":
        if not settings.CORS_ALLOWED_ORIGINS:
            raise RuntimeError("CORS_ALLOWED_ORIGINS must be configured for prod")
        return settings.CORS_ALLOWED_ORIGINS
    return settings.CORS_ALLOWED_ORIGINS or ["http://localhost:3000"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

app.add_middleware(BodySizeLimitMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.on_event("startup")
async def startup_event():
    """Create missing tables and open the Redis pool."""

    try:
        await create_tables()
    except SQLAlchemyError as exc:
        # The API still starts; readyz reports the database as unreachable.
        logger.bind(error=str(exc)).error("create_tables_failed")
    get_redis_client()
    logger.bind(redis_ready=await ping_redis()).info("startup_complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Close Redis and database pools on shutdown."""

    await close_redis_client()
    await engine.dispose()


@app.get("/api/healthz", tags=["system"], summary="Liveness probe")
def healthz() -> dict[str, str]:
    """Simple liveness probe that load balancers and monitors can call."""

    return {"status": "ok"}


@app.get("/api/readyz", tags=["system"], summary="Readiness probe")
async def readyz():
    database = True
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        database = False
    redis_ok = await ping_redis()
    ready = database and redis_ok
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"ready": ready, "database": database, "redis": redis_ok},
    )


app.include_router(merchants_router)
