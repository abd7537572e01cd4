"""Course content hierarchy entities.

A course owns an ordered sequence of chapters; a chapter exclusively owns an
ordered sequence of content items. An item is a closed union over video,
document and quiz payloads sharing the ``id``/``chapter_id``/``order``
envelope. Order values are contiguous from 1 among siblings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from courseflow.remote.schemas import (
    ChapterContentRecord,
    ChapterRecord,
    ContentTypeRef,
)


class ContentType(str, Enum):
    """Content item kind."""

    VIDEO = "video"
    DOCUMENT = "document"
    QUIZ = "quiz"


# ==============================================================================
# Payloads
# ==============================================================================


@dataclass(frozen=True)
class VideoPayload:
    content_id: str
    title: str = ""
    media_ref: str | None = None
    duration_seconds: float | None = None  # Unset until known from playback


@dataclass(frozen=True)
class DocumentPayload:
    content_id: str
    title: str = ""
    file_ref: str | None = None


@dataclass(frozen=True)
class QuizPayload:
    content_id: str
    title: str = ""
    question_count: int = 0


ContentPayload = VideoPayload | DocumentPayload | QuizPayload


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class ContentItem:
    """One ordered entry of a chapter."""

    id: str
    chapter_id: str
    order: int
    payload: ContentPayload

    @property
    def type(self) -> ContentType:
        match self.payload:
            case VideoPayload():
                return ContentType.VIDEO
            case DocumentPayload():
                return ContentType.DOCUMENT
            case QuizPayload():
                return ContentType.QUIZ
        msg = f"Unknown payload {type(self.payload).__name__}"
        raise TypeError(msg)

    @property
    def type_ref(self) -> ContentTypeRef:
        """Tag the remote store uses for this item's kind."""
        return _TYPE_REFS[self.type]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "chapter_id": self.chapter_id,
            "order": self.order,
            "type": self.type.value,
            "content_id": self.payload.content_id,
            "title": self.payload.title,
        }
        match self.payload:
            case VideoPayload(media_ref=media_ref, duration_seconds=duration):
                data["media_ref"] = media_ref
                data["duration_seconds"] = duration
            case DocumentPayload(file_ref=file_ref):
                data["file_ref"] = file_ref
            case QuizPayload(question_count=count):
                data["question_count"] = count
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentItem":
        content_id = data["content_id"]
        title = data.get("title") or ""
        payload: ContentPayload
        match ContentType(data["type"]):
            case ContentType.VIDEO:
                payload = VideoPayload(
                    content_id=content_id,
                    title=title,
                    media_ref=data.get("media_ref"),
                    duration_seconds=data.get("duration_seconds"),
                )
            case ContentType.DOCUMENT:
                payload = DocumentPayload(
                    content_id=content_id, title=title, file_ref=data.get("file_ref")
                )
            case ContentType.QUIZ:
                payload = QuizPayload(
                    content_id=content_id,
                    title=title,
                    question_count=int(data.get("question_count") or 0),
                )
        return cls(
            id=data["id"],
            chapter_id=data["chapter_id"],
            order=int(data["order"]),
            payload=payload,
        )

    @classmethod
    def from_record(cls, record: ChapterContentRecord) -> "ContentItem":
        """Create from a remote chapter content entry."""
        details = record.content_details or {}
        payload: ContentPayload
        match record.content_type_ref:
            case ContentTypeRef.VIDEO:
                duration = details.get("video_length") or details.get("duration")
                payload = VideoPayload(
                    content_id=record.content_id,
                    title=details.get("video_title") or details.get("title") or "",
                    media_ref=details.get("video_url"),
                    duration_seconds=float(duration) if duration else None,
                )
            case ContentTypeRef.DOCUMENT:
                payload = DocumentPayload(
                    content_id=record.content_id,
                    title=details.get("document_title") or details.get("title") or "",
                    file_ref=details.get("document_url") or details.get("file_url"),
                )
            case ContentTypeRef.ASSESSMENT:
                questions = details.get("questions") or []
                payload = QuizPayload(
                    content_id=record.content_id,
                    title=details.get("title") or "",
                    question_count=len(questions),
                )
        return cls(
            id=record.id,
            chapter_id=record.chapter_id,
            order=record.order,
            payload=payload,
        )

    def __repr__(self) -> str:
        return f"<ContentItem {self.type.value} id={self.id} order={self.order}>"


_TYPE_REFS = {
    ContentType.VIDEO: ContentTypeRef.VIDEO,
    ContentType.DOCUMENT: ContentTypeRef.DOCUMENT,
    ContentType.QUIZ: ContentTypeRef.ASSESSMENT,
}


@dataclass
class Chapter:
    """Ordered chapter of a course, owning its items."""

    id: str
    course_id: str
    order: int
    title: str = ""
    items: list[ContentItem] = field(default_factory=list)

    def item_orders(self) -> list[int]:
        return [item.order for item in self.items]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "order": self.order,
            "title": self.title,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chapter":
        return cls(
            id=data["id"],
            course_id=data["course_id"],
            order=int(data["order"]),
            title=data.get("title") or "",
            items=[ContentItem.from_dict(item) for item in data.get("items", [])],
        )

    @classmethod
    def from_record(
        cls,
        course_id: str,
        record: ChapterRecord,
        contents: list[ChapterContentRecord],
    ) -> "Chapter":
        """Create from remote chapter and content listings, items by order."""
        items = [ContentItem.from_record(entry) for entry in contents]
        items.sort(key=lambda item: item.order)
        return cls(
            id=record.id,
            course_id=record.course_id or course_id,
            order=record.order,
            title=record.chapter_title,
            items=items,
        )

    def __repr__(self) -> str:
        return f"<Chapter id={self.id} order={self.order} items={len(self.items)}>"
