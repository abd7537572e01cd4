"""Course content hierarchy module.

Provides:
- Chapter and content item entities (video, document, quiz)
- Ordered tree manager with contiguous renumbering and order patches
"""

from .hierarchy import (
    BatchScope,
    ChapterNotFoundError,
    ContentHierarchyManager,
    CorruptHierarchyError,
    DuplicateIdError,
    HierarchyError,
    InvalidPositionError,
    InvariantViolationError,
    ItemNotFoundError,
    OrderBatch,
    OrderPatch,
    validate_chapters,
)
from .models import (
    Chapter,
    ContentItem,
    ContentPayload,
    ContentType,
    DocumentPayload,
    QuizPayload,
    VideoPayload,
)


__all__ = [
    "BatchScope",
    "Chapter",
    "ChapterNotFoundError",
    "ContentHierarchyManager",
    "ContentItem",
    "ContentPayload",
    "ContentType",
    "CorruptHierarchyError",
    "DocumentPayload",
    "DuplicateIdError",
    "HierarchyError",
    "InvalidPositionError",
    "InvariantViolationError",
    "ItemNotFoundError",
    "OrderBatch",
    "OrderPatch",
    "QuizPayload",
    "VideoPayload",
    "validate_chapters",
]
