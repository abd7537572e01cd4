"""Pydantic schemas for the remote persistence API.

Request and response bodies for:
- Watch progress reads and checkpoint writes
- Course progress summary
- Chapter and chapter content listings
- Batch order updates
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ContentTypeRef(str, Enum):
    """Content kind tag used by the remote store."""

    VIDEO = "VideoInfo"
    DOCUMENT = "Document"
    ASSESSMENT = "Assessment"


# ==============================================================================
# Watch Progress Schemas
# ==============================================================================


class WatchProgressData(BaseModel):
    """Stored watch state of one video for one learner."""

    current_time: float = Field(0, ge=0, description="Watched position in seconds")
    progress_percent: float = Field(0, ge=0, le=100)
    completed: bool = False
    duration: float | None = Field(None, description="Last known duration")
    updated_at: datetime | None = None


class WatchProgressEnvelope(BaseModel):
    success: bool = True
    data: WatchProgressData | None = None


class CheckpointRequest(BaseModel):
    """Checkpoint write (sent roughly every 5s of playback)."""

    user_id: str
    course_id: str
    video_id: str
    current_time: float = Field(..., ge=0, description="Playback position")
    progress_percent: float = Field(..., ge=0, le=100)
    completed: bool
    duration: float | None = Field(None, gt=0)


class CheckpointResponseData(BaseModel):
    current_time: float | None = None
    completed: bool = False
    course_progress: float | None = Field(
        None, description="Server-computed course percent, when available"
    )


class CheckpointEnvelope(BaseModel):
    success: bool = True
    data: CheckpointResponseData = Field(default_factory=CheckpointResponseData)


# ==============================================================================
# Course Progress Summary Schemas
# ==============================================================================


class CourseProgressEntry(BaseModel):
    course_id: str
    progress: float | None = None


class CourseProgressListEnvelope(BaseModel):
    success: bool = True
    data: list[CourseProgressEntry] = Field(default_factory=list)


# ==============================================================================
# Chapter / Content Schemas
# ==============================================================================


class ChapterRecord(BaseModel):
    """Chapter as listed for a course."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    course_id: str | None = None
    chapter_title: str = ""
    chapter_description: str | None = None
    order: int


class ChapterContentRecord(BaseModel):
    """One content entry of a chapter, with the referenced content's details."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    chapter_id: str
    content_id: str
    content_type_ref: ContentTypeRef
    order: int
    content_details: dict[str, Any] | None = Field(None, alias="contentDetails")


class ChapterContentEnvelope(BaseModel):
    success: bool = True
    contents: list[ChapterContentRecord] = Field(default_factory=list)


class AddContentRequest(BaseModel):
    content_id: str
    content_type_ref: ContentTypeRef


# ==============================================================================
# Order Update Schemas
# ==============================================================================


class OrderPatchEntry(BaseModel):
    """One ``{id, order, chapter_id?}`` element of a batch order update."""

    id: str
    order: int = Field(..., ge=1)
    chapter_id: str | None = None


class ChapterOrderRequest(BaseModel):
    chapters: list[OrderPatchEntry]


class ContentOrderRequest(BaseModel):
    items: list[OrderPatchEntry]
