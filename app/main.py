# app/main.py
import logging
from typing import Optional

from fastapi import FastAPI, Request

from app import config
from app.db import create_db_and_tables
from app.logging_config import setup_logging
from app.services.rate_limit import limiter, rate_limit_key, rate_limit_response

# Routers
from app.routers.health import router as health_router
from app.routers.voice import router as voice_router
from app.routers.sms import router as sms_router
from app.routers.ai import router as ai_router
from app.routers.businesses import router as businesses_router

logger = logging.getLogger("app.main")

app = FastAPI(title="Missed-Call SMS Assistant", version="0.1.0")


# ---------- Simple per-client rate limiting ----------
def _bucket_for_path(path: str) -> Optional[str]:
    if path.startswith("/twilio/"):
        return "twilio"
    if path.startswith("/ai/"):
        return "ai"
    return None


@app.middleware("http")
async def per_client_rate_limit(request: Request, call_next):
    if not config.settings.RATE_LIMIT_ENABLED:
        return await call_next(request)
    bucket = _bucket_for_path(request.url.path)
    if not bucket or request.method != "POST":
        return await call_next(request)

    limit = config.settings.RATE_LIMIT_PER_MINUTE
    if limit <= 0:
        return await call_next(request)

    key = rate_limit_key(request, prefix=bucket)
    result = limiter.check(key, limit, window_seconds=60)
    if not result.allowed:
        logger.warning("[RATE] limit exceeded key=%s", key)
        return rate_limit_response(result, limit)
    return await call_next(request)


# ---------- Routers ----------
app.include_router(health_router)
app.include_router(voice_router)
app.include_router(sms_router)
app.include_router(ai_router)
app.include_router(businesses_router)


# ---------- Startup ----------
@app.on_event("startup")
def on_startup():
    setup_logging()
    create_db_and_tables()
