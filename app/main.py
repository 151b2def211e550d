import asyncio
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

from app.api.v1.router import router as api_v1_router
from app.core.exceptions import (
    DuplicateColumnNameError,
    FormulaError,
    InvalidFormulaError,
    InvalidTransformError,
    MissingUserIdentityError,
    NotFoundError,
)
from app.core.config import settings as app_settings
from app.core.rate_limit import limiter
from app.core.database import AsyncSessionLocal
from app.services.delivery_pool import DeliveryWorkerPool
from app.services.retry_poller import start_retry_poller_loop
from app.services.webhook_dispatcher import build_delivery_handler

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the outbound HTTP client, the delivery pool and the retry poller."""
    http_client = httpx.AsyncClient(follow_redirects=False)
    pool = DeliveryWorkerPool(
        build_delivery_handler(http_client, AsyncSessionLocal),
        workers=app_settings.WEBHOOK_MAX_CONCURRENT_DELIVERIES,
        queue_size=app_settings.WEBHOOK_DELIVERY_QUEUE_SIZE,
    )
    pool.start()
    app.state.http_client = http_client
    app.state.delivery_pool = pool

    poller_task = None
    if app_settings.WEBHOOK_RETRY_POLLER_ENABLED:
        poller_task = asyncio.create_task(
            start_retry_poller_loop(AsyncSessionLocal, pool, http_client)
        )
        logger.info("Background webhook retry poller scheduled")
    yield
    # Shutdown: stop polling, drain queued deliveries, close the client
    if poller_task is not None:
        poller_task.cancel()
        try:
            await poller_task
        except asyncio.CancelledError:
            logger.info("Background webhook retry poller stopped")
    await pool.stop()
    await http_client.aclose()


app = FastAPI(
    title="LeadFlow CRM Core",
    description="Calculated columns and outbound webhooks for the lead CRM",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware, restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(MissingUserIdentityError)
async def missing_identity_handler(request: Request, exc: MissingUserIdentityError):
    logger.warning("Request without user identity: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=401,
        content={"detail": exc.detail, "type": "missing_user_identity"},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.warning("Not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "not_found"},
    )


@app.exception_handler(DuplicateColumnNameError)
async def duplicate_column_handler(request: Request, exc: DuplicateColumnNameError):
    logger.warning("Duplicate calculated column: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "duplicate_column_name"},
    )


@app.exception_handler(InvalidFormulaError)
async def invalid_formula_handler(request: Request, exc: InvalidFormulaError):
    logger.warning("Invalid formula: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_formula"},
    )


@app.exception_handler(InvalidTransformError)
async def invalid_transform_handler(request: Request, exc: InvalidTransformError):
    logger.warning("Invalid transform script: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_transform"},
    )


@app.exception_handler(FormulaError)
async def formula_error_handler(request: Request, exc: FormulaError):
    logger.warning("Formula error: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "formula_error"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": exc.errors(),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
