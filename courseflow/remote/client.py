"""HTTP client for the remote persistence API.

This client handles:
- Watch progress reads and checkpoint writes
- The learner's course progress summary
- Chapter and chapter content listings, additions and removals
- Batch order updates for chapters and content items

The credential supplied by the auth collaborator is forwarded verbatim as a
bearer token; it is never inspected here.
"""

from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from courseflow.config.settings import Settings

from .schemas import (
    AddContentRequest,
    ChapterContentEnvelope,
    ChapterContentRecord,
    ChapterOrderRequest,
    ChapterRecord,
    CheckpointEnvelope,
    CheckpointRequest,
    CheckpointResponseData,
    ContentOrderRequest,
    ContentTypeRef,
    CourseProgressListEnvelope,
    OrderPatchEntry,
    WatchProgressData,
    WatchProgressEnvelope,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class RemoteStoreError(Exception):
    """Base remote store error."""

    def __init__(self, message: str, code: str = "remote_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class TransientRemoteError(RemoteStoreError):
    """Network failure, timeout or 5xx; safe to retry later."""

    def __init__(self, message: str = "Remote store unavailable"):
        super().__init__(message, "remote_unavailable")


class UnauthorizedError(RemoteStoreError):
    """Credential rejected (401/403); propagated to the caller unchanged."""

    def __init__(self, message: str = "Credential rejected by remote store"):
        super().__init__(message, "unauthorized")


class RemoteRequestError(RemoteStoreError):
    """Request refused with a non-retryable 4xx status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message, "request_rejected")
        self.status_code = status_code


class RemoteResponseError(RemoteStoreError):
    """Response body could not be understood."""

    def __init__(self, message: str = "Malformed response from remote store"):
        super().__init__(message, "bad_response")


# ==============================================================================
# Client
# ==============================================================================


class RemoteStoreClient:
    """Async client for the remote persistence API."""

    def __init__(self, http: httpx.AsyncClient, credential: str | None = None):
        """Initialize with an httpx client.

        Args:
            http: Client with ``base_url`` pointing at the API root.
            credential: Opaque credential forwarded as a bearer token.
        """
        self._http = http
        self._credential = credential

    @classmethod
    def from_settings(
        cls, settings: Settings, credential: str | None = None
    ) -> "RemoteStoreClient":
        """Build a client with its own connection pool from settings."""
        http = httpx.AsyncClient(
            base_url=settings.remote_api_base_url,
            timeout=httpx.Timeout(
                settings.remote_api_timeout,
                connect=settings.remote_api_connect_timeout,
            ),
            limits=httpx.Limits(max_connections=settings.remote_api_max_connections),
        )
        return cls(http, credential=credential)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ==========================================================================
    # Transport
    # ==========================================================================

    def _headers(self) -> dict[str, str]:
        if not self._credential:
            return {}
        return {"Authorization": f"Bearer {self._credential}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> httpx.Response | None:
        """Send a request and map failures onto the error taxonomy.

        Returns None for a 404 when ``allow_not_found`` is set.
        """
        try:
            response = await self._http.request(
                method, path, json=json, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            logger.warning("remote_timeout", method=method, path=path)
            raise TransientRemoteError(f"Timeout calling {method} {path}") from e
        except httpx.TransportError as e:
            logger.warning(
                "remote_transport_error", method=method, path=path, error=str(e)
            )
            raise TransientRemoteError(f"Transport error calling {method} {path}") from e

        status_code = response.status_code
        if status_code in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
            raise UnauthorizedError
        if status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
            logger.warning(
                "remote_server_error", method=method, path=path, status=status_code
            )
            raise TransientRemoteError(f"{method} {path} returned {status_code}")
        if status_code == httpx.codes.NOT_FOUND and allow_not_found:
            return None
        if status_code >= httpx.codes.BAD_REQUEST:
            raise RemoteRequestError(
                f"{method} {path} returned {status_code}", status_code
            )
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteResponseError(
                f"Unexpected body for {model.__name__}: {e}"
            ) from e

    # ==========================================================================
    # Watch Progress
    # ==========================================================================

    async def get_watch_progress(
        self, user_id: str, course_id: str, video_id: str
    ) -> WatchProgressData | None:
        """Get stored watch state; None if the video was never checkpointed."""
        response = await self._request(
            "GET",
            f"/courses/video/progress/{user_id}/{course_id}/{video_id}",
            allow_not_found=True,
        )
        if response is None:
            return None
        envelope = self._parse(response, WatchProgressEnvelope)
        return envelope.data if envelope.success else None

    async def save_checkpoint(
        self, checkpoint: CheckpointRequest
    ) -> CheckpointResponseData:
        """Write a checkpoint; returns the server's view incl. course progress."""
        response = await self._request(
            "POST",
            "/courses/video/progress",
            json=checkpoint.model_dump(mode="json", exclude_none=True),
        )
        envelope = self._parse(response, CheckpointEnvelope)
        if not envelope.success:
            raise RemoteResponseError("Checkpoint rejected by remote store")
        return envelope.data

    async def get_course_progress(self, user_id: str, course_id: str) -> float | None:
        """Get the server-computed course percent from the learner's summary."""
        response = await self._request(
            "GET", f"/courses/progress/{user_id}", allow_not_found=True
        )
        if response is None:
            return None
        envelope = self._parse(response, CourseProgressListEnvelope)
        for entry in envelope.data:
            if entry.course_id == course_id:
                return entry.progress
        return None

    # ==========================================================================
    # Chapters and Content
    # ==========================================================================

    async def list_chapters(self, course_id: str) -> list[ChapterRecord]:
        response = await self._request(
            "GET", f"/courses/chapter/{course_id}", allow_not_found=True
        )
        if response is None:
            return []
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteResponseError("Chapter listing is not JSON") from e
        if isinstance(payload, dict):
            payload = payload.get("chapters", payload.get("data", []))
        try:
            return [ChapterRecord.model_validate(row) for row in payload]
        except (TypeError, ValidationError) as e:
            raise RemoteResponseError(f"Unexpected chapter listing: {e}") from e

    async def list_chapter_content(self, chapter_id: str) -> list[ChapterContentRecord]:
        """List a chapter's content; a 404 means the chapter is empty."""
        response = await self._request(
            "GET", f"/chapter-content/chapter/{chapter_id}", allow_not_found=True
        )
        if response is None:
            return []
        return self._parse(response, ChapterContentEnvelope).contents

    async def add_content(
        self, chapter_id: str, content_id: str, content_type_ref: ContentTypeRef
    ) -> ChapterContentRecord:
        body = AddContentRequest(
            content_id=content_id, content_type_ref=content_type_ref
        )
        response = await self._request(
            "POST",
            f"/chapter-content/chapter/{chapter_id}",
            json=body.model_dump(mode="json"),
        )
        return self._parse(response, ChapterContentRecord)

    async def delete_content(self, item_id: str) -> None:
        await self._request("DELETE", f"/chapter-content/{item_id}")

    async def delete_chapter(self, chapter_id: str) -> None:
        await self._request("DELETE", f"/courses/chapter/{chapter_id}")

    # ==========================================================================
    # Order Updates
    # ==========================================================================

    async def patch_chapter_order(self, entries: list[OrderPatchEntry]) -> None:
        body = ChapterOrderRequest(chapters=entries)
        await self._request(
            "PATCH",
            "/courses/chapter/order",
            json=body.model_dump(mode="json", exclude_none=True),
        )

    async def patch_content_order(self, entries: list[OrderPatchEntry]) -> None:
        body = ContentOrderRequest(items=entries)
        await self._request(
            "PATCH",
            "/chapter-content/order",
            json=body.model_dump(mode="json", exclude_none=True),
        )
