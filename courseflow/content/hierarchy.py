"""Content hierarchy manager.

Owns the in-memory ordered tree of a course (chapters -> items) and computes
the order patches each mutation requires. After every operation:
- every chapter's item orders are exactly 1..N
- the course's chapter orders are exactly 1..M

Operations validate their arguments before touching the tree, so a raised
HierarchyError leaves the tree unchanged.
"""

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from .models import Chapter, ContentItem, ContentType


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class HierarchyError(Exception):
    """Base hierarchy error."""

    def __init__(self, message: str, code: str = "hierarchy_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ChapterNotFoundError(HierarchyError):
    def __init__(self, chapter_id: str):
        super().__init__(f"Chapter {chapter_id} not found", "chapter_not_found")


class ItemNotFoundError(HierarchyError):
    def __init__(self, message: str):
        super().__init__(message, "item_not_found")


class InvalidPositionError(HierarchyError):
    def __init__(self, message: str):
        super().__init__(message, "invalid_position")


class DuplicateIdError(HierarchyError):
    def __init__(self, message: str):
        super().__init__(message, "duplicate_id")


class InvariantViolationError(HierarchyError):
    """Loaded order values are not contiguous (treated as corrupt state)."""

    def __init__(self, message: str):
        super().__init__(message, "invariant_violation")


class CorruptHierarchyError(HierarchyError):
    """Remote state still violates the order invariant after re-fetching."""

    def __init__(self, message: str = "Remote content order is corrupt"):
        super().__init__(message, "corrupt_hierarchy")


# ==============================================================================
# Order Patches
# ==============================================================================


class BatchScope(str, Enum):
    CHAPTERS = "chapters"  # Chapter orders within the course
    ITEMS = "items"  # Item orders within one chapter


@dataclass(frozen=True)
class OrderPatch:
    """New order (and owner, for moved items) of one entity."""

    id: str
    order: int
    chapter_id: str | None = None


@dataclass(frozen=True)
class OrderBatch:
    """Renumbering of one sibling sequence.

    Only entries whose order or owner changed are listed.
    """

    scope: BatchScope
    parent_id: str
    patches: tuple[OrderPatch, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.patches)


def _check_contiguous(orders: list[int], what: str) -> None:
    if sorted(orders) != list(range(1, len(orders) + 1)):
        msg = f"{what} orders {sorted(orders)} are not contiguous from 1"
        raise InvariantViolationError(msg)


def validate_chapters(chapters: Iterable[Chapter]) -> None:
    """Check order contiguity and id uniqueness of a loaded tree.

    Raises:
        InvariantViolationError: On gaps, duplicates, or repeated ids.
    """
    chapters = list(chapters)
    _check_contiguous([chapter.order for chapter in chapters], "Chapter")

    seen_items: set[str] = set()
    for chapter in chapters:
        _check_contiguous(chapter.item_orders(), f"Chapter {chapter.id} item")
        for item in chapter.items:
            if item.id in seen_items:
                msg = f"Item {item.id} appears more than once"
                raise InvariantViolationError(msg)
            seen_items.add(item.id)

    chapter_ids = [chapter.id for chapter in chapters]
    if len(set(chapter_ids)) != len(chapter_ids):
        raise InvariantViolationError("Chapter ids are not unique")


class ContentHierarchyManager:
    """Ordered chapter/item tree of one course."""

    def __init__(self, course_id: str, chapters: Iterable[Chapter] = ()):
        """Initialize from chapters, validating order invariants.

        Raises:
            InvariantViolationError: If the chapters are not contiguous.
        """
        self.course_id = course_id
        self._chapters: list[Chapter] = []
        self.replace(chapters)

    # ==========================================================================
    # Queries
    # ==========================================================================

    @property
    def chapters(self) -> tuple[Chapter, ...]:
        return tuple(self._chapters)

    def get_chapter(self, chapter_id: str) -> Chapter:
        for chapter in self._chapters:
            if chapter.id == chapter_id:
                return chapter
        raise ChapterNotFoundError(chapter_id)

    def find_item(self, item_id: str) -> tuple[Chapter, int]:
        """Locate an item; returns its chapter and index in that chapter."""
        for chapter in self._chapters:
            for index, item in enumerate(chapter.items):
                if item.id == item_id:
                    return chapter, index
        raise ItemNotFoundError(f"Item {item_id} not found")

    def video_ids(self) -> list[str]:
        """Content ids of all videos, in course order."""
        return [
            item.payload.content_id
            for chapter in self._chapters
            for item in chapter.items
            if item.type == ContentType.VIDEO
        ]

    def check_invariants(self) -> None:
        validate_chapters(self._chapters)

    # ==========================================================================
    # Snapshots
    # ==========================================================================

    def snapshot(self) -> list[Chapter]:
        """Deep copy of the tree, for rollback."""
        return copy.deepcopy(self._chapters)

    def restore(self, snapshot: list[Chapter]) -> None:
        self._chapters = copy.deepcopy(snapshot)

    def replace(self, chapters: Iterable[Chapter]) -> None:
        """Replace the whole tree (e.g. after a remote resync)."""
        ordered = sorted(copy.deepcopy(list(chapters)), key=lambda c: c.order)
        for chapter in ordered:
            chapter.items.sort(key=lambda item: item.order)
        validate_chapters(ordered)
        self._chapters = ordered

    def to_dict(self) -> dict:
        return {
            "course_id": self.course_id,
            "chapters": [chapter.to_dict() for chapter in self._chapters],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ContentHierarchyManager":
        return cls(
            data["course_id"],
            [Chapter.from_dict(chapter) for chapter in data.get("chapters", [])],
        )

    # ==========================================================================
    # Renumbering
    # ==========================================================================

    @staticmethod
    def _renumber_items(chapter: Chapter) -> OrderBatch:
        patches = []
        for position, item in enumerate(chapter.items, start=1):
            moved_in = item.chapter_id != chapter.id
            if item.order != position or moved_in:
                item.order = position
                item.chapter_id = chapter.id
                patches.append(
                    OrderPatch(item.id, position, chapter.id if moved_in else None)
                )
        return OrderBatch(BatchScope.ITEMS, chapter.id, tuple(patches))

    def _renumber_chapters(self) -> OrderBatch:
        patches = []
        for position, chapter in enumerate(self._chapters, start=1):
            if chapter.order != position:
                chapter.order = position
                patches.append(OrderPatch(chapter.id, position))
        return OrderBatch(BatchScope.CHAPTERS, self.course_id, tuple(patches))

    @staticmethod
    def _check_index(index: int, upper: int, what: str) -> None:
        if not 0 <= index <= upper:
            msg = f"{what} index {index} outside 0..{upper}"
            raise InvalidPositionError(msg)

    # ==========================================================================
    # Item Operations
    # ==========================================================================

    def move_item(
        self,
        item_id: str,
        from_chapter_id: str,
        to_chapter_id: str,
        destination_index: int,
    ) -> list[OrderBatch]:
        """Move an item within or across chapters.

        Returns the source batch followed by the destination batch, or a
        single batch when both chapters are the same.
        """
        source = self.get_chapter(from_chapter_id)
        destination = self.get_chapter(to_chapter_id)
        source_index = next(
            (i for i, item in enumerate(source.items) if item.id == item_id), None
        )
        if source_index is None:
            msg = f"Item {item_id} is not in chapter {from_chapter_id}"
            raise ItemNotFoundError(msg)

        same_chapter = source is destination
        upper = len(destination.items) - 1 if same_chapter else len(destination.items)
        self._check_index(destination_index, upper, "Destination")

        item = source.items.pop(source_index)
        destination.items.insert(destination_index, item)

        if same_chapter:
            batches = [self._renumber_items(destination)]
        else:
            batches = [self._renumber_items(source), self._renumber_items(destination)]

        logger.debug(
            "item_moved",
            item_id=item_id,
            from_chapter_id=from_chapter_id,
            to_chapter_id=to_chapter_id,
            destination_index=destination_index,
        )
        return batches

    def insert_item(
        self, chapter_id: str, item: ContentItem, index: int | None = None
    ) -> OrderBatch:
        """Insert an item (appended when ``index`` is None)."""
        chapter = self.get_chapter(chapter_id)
        if any(existing.id == item.id for c in self._chapters for existing in c.items):
            raise DuplicateIdError(f"Item {item.id} already exists")

        position = len(chapter.items) if index is None else index
        self._check_index(position, len(chapter.items), "Insert")

        item.chapter_id = chapter.id
        chapter.items.insert(position, item)
        # The new item is always patched, whatever order it was created with
        item.order = 0
        return self._renumber_items(chapter)

    def remove_item(self, item_id: str) -> tuple[ContentItem, OrderBatch]:
        """Remove an item; only its own chapter is renumbered."""
        chapter, index = self.find_item(item_id)
        item = chapter.items.pop(index)
        return item, self._renumber_items(chapter)

    def rename_item(self, old_id: str, new_id: str) -> None:
        """Swap a provisional item id for the one the store assigned."""
        chapter, index = self.find_item(old_id)
        chapter.items[index].id = new_id

    # ==========================================================================
    # Chapter Operations
    # ==========================================================================

    def move_chapter(self, chapter_id: str, destination_index: int) -> OrderBatch:
        chapter = self.get_chapter(chapter_id)
        self._check_index(destination_index, len(self._chapters) - 1, "Destination")

        self._chapters.remove(chapter)
        self._chapters.insert(destination_index, chapter)
        return self._renumber_chapters()

    def insert_chapter(self, chapter: Chapter, index: int | None = None) -> OrderBatch:
        """Insert a chapter (appended when ``index`` is None)."""
        if any(existing.id == chapter.id for existing in self._chapters):
            raise DuplicateIdError(f"Chapter {chapter.id} already exists")
        _check_contiguous(chapter.item_orders(), f"Chapter {chapter.id} item")

        position = len(self._chapters) if index is None else index
        self._check_index(position, len(self._chapters), "Insert")

        chapter.course_id = self.course_id
        chapter.order = 0
        self._chapters.insert(position, chapter)
        return self._renumber_chapters()

    def remove_chapter(self, chapter_id: str) -> tuple[Chapter, OrderBatch]:
        """Remove a chapter together with all of its items."""
        chapter = self.get_chapter(chapter_id)
        self._chapters.remove(chapter)
        return chapter, self._renumber_chapters()
