# app/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core import logging_config  # noqa: F401  configures logging on import
from app.core.config import get_settings
from app import models  # noqa: F401  registers all models

from app.routes import checkout, connect, health, offers, payouts, purchases
from app.routes.webhooks import router as webhook_router
from app.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.SCHEDULER_ENABLED:
        await start_scheduler()
    else:
        logger.info("Scheduler disabled; use /cron/release-funds or the CLI to release funds")
    try:
        yield
    finally:
        await stop_scheduler()

app = FastAPI(
    title="Marketplace Payments",
    lifespan=lifespan
)

# Add middleware to handle HTTPS behind proxy
@app.middleware("http")
async def proxy_headers_middleware(request: Request, call_next):
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_proto == "https":
        request.scope["scheme"] = "https"
    response = await call_next(request)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Body/query validation failures are plain 400s for the front end"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", [])[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"detail": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Buyer/seller routes authenticate with the bearer token per endpoint;
# /payout/trigger uses admin basic auth, /cron uses the cron secret
app.include_router(checkout.router)
app.include_router(offers.router)
app.include_router(purchases.router)
app.include_router(connect.router)
app.include_router(payouts.router)
app.include_router(webhook_router)  # Webhooks authenticate by signature
app.include_router(health.router)  # Health check should be accessible without auth
