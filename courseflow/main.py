"""Courseflow engine - wiring and lifecycle."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from decimal import Decimal
from pathlib import Path

import redis.asyncio as redis

from courseflow.cache import LocalFallbackCache
from courseflow.config import Settings, get_settings
from courseflow.core.logging import configure_structlog, get_logger
from courseflow.core.redis import init_redis, shutdown_redis
from courseflow.progress import CourseProgressAggregator, ProgressStoreAdapter
from courseflow.reconciliation import (
    ContentReconciler,
    LearnerCourseSession,
    ProgressReconciler,
)
from courseflow.remote import RemoteStoreClient


logger = get_logger(__name__)


class Engine:
    """Shared connections for one authenticated user.

    Reconcilers built here share the HTTP connection pool, the cache and
    the progress adapter (so write ordering holds across sessions).
    """

    def __init__(
        self,
        settings: Settings,
        user_id: str,
        client: RemoteStoreClient,
        redis_client: redis.Redis | None,
    ):
        self.settings = settings
        self.user_id = user_id
        self.client = client
        self.redis_client = redis_client
        self.cache = LocalFallbackCache(
            redis_client,
            namespace=settings.cache_namespace,
            ttl_seconds=settings.cache_ttl_seconds,
        )
        self.progress_adapter = ProgressStoreAdapter(client)
        self.aggregator = CourseProgressAggregator()
        self._content: dict[str, ContentReconciler] = {}

    def content_reconciler(self, course_id: str) -> ContentReconciler:
        """Get the (single) content reconciler of a course."""
        reconciler = self._content.get(course_id)
        if reconciler is None:
            reconciler = self._content[course_id] = ContentReconciler(
                client=self.client,
                cache=self.cache,
                course_id=course_id,
                refetch_attempts=self.settings.invariant_refetch_attempts,
            )
        return reconciler

    async def open_learner_session(self, course_id: str) -> LearnerCourseSession:
        """Load a course's content and the learner's progress in it."""
        content = self.content_reconciler(course_id)
        manager = await content.load()

        reconciler = ProgressReconciler(
            adapter=self.progress_adapter,
            cache=self.cache,
            user_id=self.user_id,
            course_id=course_id,
            video_ids=manager.video_ids(),
            aggregator=self.aggregator,
        )
        await reconciler.load()

        logger.info(
            "learner_session_opened",
            course_id=course_id,
            videos=len(reconciler.video_ids),
        )
        return LearnerCourseSession(
            reconciler,
            checkpoint_interval=self.settings.checkpoint_interval_seconds,
            completion_threshold=Decimal(str(self.settings.completion_threshold_percent)),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
        await shutdown_redis(self.redis_client)


@asynccontextmanager
async def open_engine(
    settings: Settings | None,
    user_id: str,
    credential: str | None,
) -> AsyncGenerator[Engine, None]:
    """Open the remote API client and the local cache for a user.

    Redis is non-critical: without it the cache behaves as always empty.
    """
    settings = settings or get_settings()
    configure_structlog(settings, log_dir=Path(settings.log_dir))

    logger.info(
        "starting_engine",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    client = RemoteStoreClient.from_settings(settings, credential=credential)
    redis_client = await init_redis(settings)
    if redis_client is None:
        logger.warning(
            "redis_init_skipped",
            message="Running without local fallback cache",
        )

    engine = Engine(settings, user_id, client, redis_client)
    try:
        yield engine
    finally:
        logger.info("shutting_down_engine")
        await engine.aclose()
