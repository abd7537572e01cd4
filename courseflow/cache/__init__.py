"""Local fallback cache (Redis-backed JSON key/value store)."""

from .service import LocalFallbackCache, course_content_key, course_progress_key


__all__ = [
    "LocalFallbackCache",
    "course_content_key",
    "course_progress_key",
]
