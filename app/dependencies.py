import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import Depends, Header, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheService
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import MissingUserIdentityError
from app.repositories.calculated_column_repository import CalculatedColumnRepository
from app.repositories.calculated_result_repository import CalculatedResultRepository
from app.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from app.repositories.webhook_repository import WebhookRepository
from app.services.calculated_column_service import CalculatedColumnService
from app.services.column_evaluation import ColumnEvaluator
from app.services.delivery_pool import DeliveryWorkerPool
from app.services.option_store import OptionStore
from app.services.result_cache import ResultCache
from app.services.webhook_delivery import WebhookDeliverer
from app.services.webhook_dispatcher import WebhookDispatcher, build_delivery_handler
from app.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """Identity forwarded by the authenticating gateway."""
    if not x_user_id or not x_user_id.strip():
        raise MissingUserIdentityError()
    return x_user_id.strip()


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> AsyncIterator[Optional[Redis]]:
    """Yield an async Redis client, or ``None`` when Redis is down."""
    client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        logger.warning("Redis unavailable, option store degraded for this request")
        await client.aclose()
        yield None
        return
    try:
        yield client
    finally:
        await client.aclose()


async def get_cache_service(
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> CacheService:
    """Build a :class:`CacheService` backed by the shared Redis client."""
    return CacheService(redis_client=redis_client)


# ---------------------------------------------------------------------------
# Process-wide delivery resources (created in the app lifespan)
# ---------------------------------------------------------------------------


def get_http_client(request: Request) -> httpx.AsyncClient:
    client = getattr(request.app.state, "http_client", None)
    if client is None:
        client = httpx.AsyncClient(follow_redirects=False)
        request.app.state.http_client = client
    return client


def get_delivery_pool(
    request: Request,
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> DeliveryWorkerPool:
    pool = getattr(request.app.state, "delivery_pool", None)
    if pool is None:
        pool = DeliveryWorkerPool(
            build_delivery_handler(http_client),
            workers=settings.WEBHOOK_MAX_CONCURRENT_DELIVERIES,
            queue_size=settings.WEBHOOK_DELIVERY_QUEUE_SIZE,
        )
        request.app.state.delivery_pool = pool
    return pool


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_column_repo(
    db: AsyncSession = Depends(get_db),
) -> CalculatedColumnRepository:
    return CalculatedColumnRepository(db)


async def get_result_repo(
    db: AsyncSession = Depends(get_db),
) -> CalculatedResultRepository:
    return CalculatedResultRepository(db)


async def get_webhook_repo(
    db: AsyncSession = Depends(get_db),
) -> WebhookRepository:
    return WebhookRepository(db)


async def get_delivery_repo(
    db: AsyncSession = Depends(get_db),
) -> WebhookDeliveryRepository:
    return WebhookDeliveryRepository(db)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_result_cache(
    result_repo: CalculatedResultRepository = Depends(get_result_repo),
) -> ResultCache:
    return ResultCache(result_repo)


async def get_calculated_column_service(
    column_repo: CalculatedColumnRepository = Depends(get_column_repo),
    result_cache: ResultCache = Depends(get_result_cache),
) -> CalculatedColumnService:
    """Build a :class:`CalculatedColumnService` with injected dependencies."""
    return CalculatedColumnService(column_repo, result_cache)


async def get_column_evaluator(
    column_repo: CalculatedColumnRepository = Depends(get_column_repo),
    result_cache: ResultCache = Depends(get_result_cache),
) -> ColumnEvaluator:
    return ColumnEvaluator(column_repo, result_cache)


async def get_webhook_service(
    webhook_repo: WebhookRepository = Depends(get_webhook_repo),
    delivery_repo: WebhookDeliveryRepository = Depends(get_delivery_repo),
) -> WebhookService:
    return WebhookService(webhook_repo, delivery_repo)


async def get_webhook_dispatcher(
    webhook_repo: WebhookRepository = Depends(get_webhook_repo),
    delivery_repo: WebhookDeliveryRepository = Depends(get_delivery_repo),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    pool: DeliveryWorkerPool = Depends(get_delivery_pool),
) -> WebhookDispatcher:
    """Build a :class:`WebhookDispatcher` sharing the request's session."""
    deliverer = WebhookDeliverer(webhook_repo, delivery_repo, http_client)
    return WebhookDispatcher(webhook_repo, delivery_repo, deliverer, pool)


async def get_option_store(
    cache: CacheService = Depends(get_cache_service),
) -> OptionStore:
    return OptionStore(cache)
