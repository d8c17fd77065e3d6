"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.cm_common.database import engine
from src.cm_common.errors import AppError
from src.cm_common.redis_client import close_redis, ping_redis
from src.cm_common.response import error_response
from src.cm_gateway.middleware.request_log import RequestLogMiddleware
from src.cm_jobs.scheduler import build_scheduler
from src.cm_trade.api.internal_router import router as trade_internal_router
from src.cm_trade.api.purchase_router import router as purchase_router
from src.cm_trade.api.router import router as trade_router
from src.cm_valuation.api.router import router as valuation_router
from src.cm_wallet.api.internal_router import router as wallet_internal_router
from src.cm_wallet.api.router import router as wallet_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start sweeps. Shutdown: stop sweeps, dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    if not await ping_redis():
        logger.warning("Redis unreachable at startup; trade events will be dropped until it recovers")
    scheduler = build_scheduler() if settings.SCHEDULER_ENABLED else None
    if scheduler is not None:
        scheduler.start()
    yield
    # Shutdown
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("AppError %d on %s: %s", exc.code, request.url.path, exc.message)
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(trade_router, prefix="/api/v1")
app.include_router(purchase_router, prefix="/api/v1")
app.include_router(valuation_router, prefix="/api/v1")
app.include_router(wallet_router, prefix="/api/v1")
app.include_router(wallet_internal_router, prefix="/api/v1")
app.include_router(trade_internal_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
