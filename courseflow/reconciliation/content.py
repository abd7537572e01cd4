"""Reconciliation of instructor edits to the content hierarchy.

Every mutation is applied to the local tree first (and mirrored to the local
cache), then written to the remote store:
- success commits the mutation
- failure rolls it back by re-fetching the remote tree and replacing the
  local one wholesale; if the re-fetch fails too, the tree returns to the
  snapshot taken before the mutation

Mutations from one client are serialized: the next starts only after the
previous one, including its remote round-trip, has resolved.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from courseflow.cache import LocalFallbackCache, course_content_key
from courseflow.content import (
    BatchScope,
    Chapter,
    ContentHierarchyManager,
    ContentItem,
    CorruptHierarchyError,
    InvariantViolationError,
    OrderBatch,
    validate_chapters,
)
from courseflow.core.context import OperationContext
from courseflow.remote import (
    OrderPatchEntry,
    RemoteStoreClient,
    RemoteStoreError,
    UnauthorizedError,
)

from .models import Mutation, MutationKind


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Resolved mutations kept for inspection
MUTATION_HISTORY_SIZE = 50


class ContentNotLoadedError(Exception):
    """Mutation attempted before the course content was loaded."""


class ContentReconciler:
    """Optimistic editing of one course's chapter/item tree."""

    def __init__(
        self,
        client: RemoteStoreClient,
        cache: LocalFallbackCache,
        course_id: str,
        refetch_attempts: int = 2,
    ):
        self.course_id = course_id
        self._client = client
        self._cache = cache
        self._refetch_attempts = refetch_attempts
        self._lock = asyncio.Lock()
        self._manager: ContentHierarchyManager | None = None
        self._remote_loaded = False
        self.history: deque[Mutation] = deque(maxlen=MUTATION_HISTORY_SIZE)

    @property
    def manager(self) -> ContentHierarchyManager:
        if self._manager is None:
            msg = f"Content of course {self.course_id} is not loaded"
            raise ContentNotLoadedError(msg)
        return self._manager

    @property
    def remote_loaded(self) -> bool:
        """Whether a remote read has succeeded (cache is then a mirror only)."""
        return self._remote_loaded

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def _fetch_once(self) -> list[Chapter]:
        records = await self._client.list_chapters(self.course_id)
        contents = await asyncio.gather(
            *(self._client.list_chapter_content(record.id) for record in records)
        )
        chapters = [
            Chapter.from_record(self.course_id, record, entries)
            for record, entries in zip(records, contents, strict=True)
        ]
        chapters.sort(key=lambda chapter: chapter.order)
        return chapters

    async def _fetch_remote(self) -> list[Chapter]:
        """Fetch the remote tree, re-fetching while its orders are corrupt.

        Raises:
            CorruptHierarchyError: If every attempt violates the invariants.
        """
        for attempt in range(1 + self._refetch_attempts):
            chapters = await self._fetch_once()
            try:
                validate_chapters(chapters)
            except InvariantViolationError as e:
                logger.warning(
                    "content_invariant_violation",
                    attempt=attempt + 1,
                    error=e.message,
                )
                continue
            return chapters
        raise CorruptHierarchyError

    async def _mirror(self) -> None:
        if self._manager is not None:
            await self._cache.set(
                course_content_key(self.course_id), self._manager.to_dict()
            )

    async def load(self) -> ContentHierarchyManager:
        """Load the tree from the remote store, falling back to the cache.

        The cache is consulted only while no remote read has succeeded yet.
        Later failures keep the current tree. Waits for any mutation in
        progress to resolve before replacing the tree.

        Raises:
            UnauthorizedError: If the credential is rejected.
            RemoteStoreError: If the store fails and nothing local exists.
            CorruptHierarchyError: If the remote tree stays corrupt.
        """
        async with self._lock:
            with OperationContext(course_id=self.course_id):
                try:
                    chapters = await self._fetch_remote()
                except UnauthorizedError:
                    raise
                except RemoteStoreError as e:
                    if self._remote_loaded and self._manager is not None:
                        logger.warning("content_refresh_failed", error=e.message)
                        return self._manager
                    cached = await self._load_cached()
                    if cached is None:
                        raise
                    logger.info("content_loaded_from_cache", error=e.message)
                    self._manager = cached
                    return cached

                if self._manager is None:
                    self._manager = ContentHierarchyManager(self.course_id, chapters)
                else:
                    self._manager.replace(chapters)
                self._remote_loaded = True
                await self._mirror()
                logger.info("content_loaded", chapters=len(chapters))
                return self._manager

    async def _load_cached(self) -> ContentHierarchyManager | None:
        data = await self._cache.get(course_content_key(self.course_id))
        if not data:
            return None
        try:
            return ContentHierarchyManager.from_dict(data)
        except (KeyError, TypeError, ValueError, InvariantViolationError) as e:
            logger.warning("content_cache_unusable", error=str(e))
            return None

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    async def _resync(self, snapshot: list[Chapter]) -> None:
        """Replace the local tree with the remote one, else the snapshot."""
        manager = self.manager
        try:
            chapters = await self._fetch_remote()
        except UnauthorizedError:
            manager.restore(snapshot)
            await self._mirror()
            raise
        except (RemoteStoreError, CorruptHierarchyError) as e:
            manager.restore(snapshot)
            logger.warning("content_resync_failed", error=e.message)
        else:
            manager.replace(chapters)
            self._remote_loaded = True
        await self._mirror()

    async def _apply(
        self,
        kind: MutationKind,
        target_id: str,
        change: Callable[[ContentHierarchyManager], T],
        write: Callable[[T], Awaitable[None]],
    ) -> Mutation:
        async with self._lock:
            manager = self.manager
            mutation = Mutation(kind, target_id)

            with OperationContext(mutation_id=mutation.id, course_id=self.course_id):
                snapshot = manager.snapshot()
                # Validation errors propagate with the tree untouched
                outcome = change(manager)
                await self._mirror()

                try:
                    await write(outcome)
                except UnauthorizedError as e:
                    mutation.roll_back(e.message)
                    manager.restore(snapshot)
                    await self._mirror()
                    self.history.append(mutation)
                    raise
                except RemoteStoreError as e:
                    mutation.roll_back(e.message)
                    logger.warning(
                        "mutation_rolled_back",
                        kind=kind.value,
                        target_id=target_id,
                        error=e.message,
                    )
                    await self._resync(snapshot)
                else:
                    mutation.commit()
                    logger.info(
                        "mutation_committed", kind=kind.value, target_id=target_id
                    )

            self.history.append(mutation)
            return mutation

    async def _send_batch(
        self, batch: OrderBatch, id_map: dict[str, str] | None = None
    ) -> None:
        if not batch:
            return
        id_map = id_map or {}
        entries = [
            OrderPatchEntry(
                id=id_map.get(patch.id, patch.id),
                order=patch.order,
                chapter_id=patch.chapter_id,
            )
            for patch in batch.patches
        ]
        if batch.scope == BatchScope.CHAPTERS:
            await self._client.patch_chapter_order(entries)
        else:
            await self._client.patch_content_order(entries)

    async def _send_batches(self, batches: list[OrderBatch]) -> None:
        for batch in batches:
            await self._send_batch(batch)

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def move_item(
        self,
        item_id: str,
        from_chapter_id: str,
        to_chapter_id: str,
        destination_index: int,
    ) -> Mutation:
        return await self._apply(
            MutationKind.MOVE_ITEM,
            item_id,
            lambda m: m.move_item(
                item_id, from_chapter_id, to_chapter_id, destination_index
            ),
            self._send_batches,
        )

    async def move_chapter(self, chapter_id: str, destination_index: int) -> Mutation:
        return await self._apply(
            MutationKind.MOVE_CHAPTER,
            chapter_id,
            lambda m: m.move_chapter(chapter_id, destination_index),
            self._send_batch,
        )

    async def insert_item(
        self, chapter_id: str, item: ContentItem, index: int | None = None
    ) -> Mutation:
        """Add an item; its id is replaced by the one the store assigns."""
        provisional_id = item.id

        async def write(batch: OrderBatch) -> None:
            record = await self._client.add_content(
                chapter_id, item.payload.content_id, item.type_ref
            )
            self.manager.rename_item(provisional_id, record.id)
            await self._send_batch(batch, {provisional_id: record.id})

        return await self._apply(
            MutationKind.INSERT_ITEM,
            provisional_id,
            lambda m: m.insert_item(chapter_id, item, index),
            write,
        )

    async def remove_item(self, item_id: str) -> Mutation:
        async def write(outcome: tuple[ContentItem, OrderBatch]) -> None:
            await self._client.delete_content(item_id)
            await self._send_batch(outcome[1])

        return await self._apply(
            MutationKind.REMOVE_ITEM,
            item_id,
            lambda m: m.remove_item(item_id),
            write,
        )

    async def insert_chapter(
        self, chapter: Chapter, index: int | None = None
    ) -> Mutation:
        """Place an already created chapter at ``index`` in the course."""
        return await self._apply(
            MutationKind.INSERT_CHAPTER,
            chapter.id,
            lambda m: m.insert_chapter(chapter, index),
            self._send_batch,
        )

    async def remove_chapter(self, chapter_id: str) -> Mutation:
        """Remove a chapter; the store cascades the removal to its items."""

        async def write(outcome: tuple[Chapter, OrderBatch]) -> None:
            await self._client.delete_chapter(chapter_id)
            await self._send_batch(outcome[1])

        return await self._apply(
            MutationKind.REMOVE_CHAPTER,
            chapter_id,
            lambda m: m.remove_chapter(chapter_id),
            write,
        )
