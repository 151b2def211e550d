"""API-layer dependency functions.

Re-exports all dependency factories from ``app.dependencies`` so that
endpoint modules only need to import from ``app.api.deps``.
"""

from app.dependencies import (
    # Identity
    get_current_user_id,
    # Repository factories
    get_column_repo,
    get_result_repo,
    get_webhook_repo,
    get_delivery_repo,
    # Service factories
    get_result_cache,
    get_calculated_column_service,
    get_column_evaluator,
    get_webhook_service,
    get_webhook_dispatcher,
    get_option_store,
    # Shared resources
    get_http_client,
    get_delivery_pool,
    get_redis_client,
    get_cache_service,
)

__all__ = [
    "get_current_user_id",
    "get_column_repo",
    "get_result_repo",
    "get_webhook_repo",
    "get_delivery_repo",
    "get_result_cache",
    "get_calculated_column_service",
    "get_column_evaluator",
    "get_webhook_service",
    "get_webhook_dispatcher",
    "get_option_store",
    "get_http_client",
    "get_delivery_pool",
    "get_redis_client",
    "get_cache_service",
]
