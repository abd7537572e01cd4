# Core infrastructure
from courseflow.core.context import (
    OperationContext,
    clear_context,
    get_context,
    get_course_id,
    get_mutation_id,
    get_user_id,
    get_video_id,
)
from courseflow.core.logging import configure_structlog, get_logger
from courseflow.core.redis import init_redis, shutdown_redis


__all__ = [
    "OperationContext",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_course_id",
    "get_logger",
    "get_mutation_id",
    "get_user_id",
    "get_video_id",
    "init_redis",
    "shutdown_redis",
]
