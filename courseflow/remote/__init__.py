"""Remote persistence API access.

Provides:
- Async HTTP client (httpx) for progress, chapters and order updates
- Wire schemas for request and response bodies
- Error taxonomy for transient, auth and request failures
"""

from .client import (
    RemoteRequestError,
    RemoteResponseError,
    RemoteStoreClient,
    RemoteStoreError,
    TransientRemoteError,
    UnauthorizedError,
)
from .schemas import (
    ChapterContentRecord,
    ChapterRecord,
    CheckpointRequest,
    CheckpointResponseData,
    ContentTypeRef,
    OrderPatchEntry,
    WatchProgressData,
)


__all__ = [
    "ChapterContentRecord",
    "ChapterRecord",
    "CheckpointRequest",
    "CheckpointResponseData",
    "ContentTypeRef",
    "OrderPatchEntry",
    "RemoteRequestError",
    "RemoteResponseError",
    "RemoteStoreClient",
    "RemoteStoreError",
    "TransientRemoteError",
    "UnauthorizedError",
    "WatchProgressData",
]
