"""Operation context management using contextvars.

Every checkpoint and every hierarchy mutation runs with the learner, course,
video and mutation identifiers bound here, so any log line emitted in the
call stack is tagged with them without passing parameters explicitly.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


# Context variables for operation tracking
mutation_id_var: ContextVar[str] = ContextVar("mutation_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)
video_id_var: ContextVar[str | None] = ContextVar("video_id", default=None)


def generate_mutation_id() -> str:
    """Generate a new unique mutation ID."""
    return str(uuid4())


def get_mutation_id() -> str:
    """Get the current mutation ID."""
    return mutation_id_var.get()


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def get_course_id() -> str | None:
    """Get the current course ID."""
    return course_id_var.get()


def get_video_id() -> str | None:
    """Get the current video ID."""
    return video_id_var.get()


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary.

    Returns:
        Dictionary with whichever of mutation_id, user_id, course_id and
        video_id are set.
    """
    context: dict[str, Any] = {}

    mutation_id = get_mutation_id()
    if mutation_id:
        context["mutation_id"] = mutation_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    course_id = get_course_id()
    if course_id:
        context["course_id"] = course_id

    video_id = get_video_id()
    if video_id:
        context["video_id"] = video_id

    return context


def clear_context() -> None:
    """Clear all context variables."""
    mutation_id_var.set("")
    user_id_var.set(None)
    course_id_var.set(None)
    video_id_var.set(None)


class OperationContext:
    """Context manager for a single checkpoint or mutation.

    Usage:
        with OperationContext(user_id=..., course_id=...):
            log.info("doing something")  # Will include mutation_id, user_id, ...
    """

    def __init__(
        self,
        mutation_id: str | None = None,
        user_id: str | UUID | None = None,
        course_id: str | UUID | None = None,
        video_id: str | UUID | None = None,
    ) -> None:
        self.mutation_id = mutation_id
        self.user_id = user_id
        self.course_id = course_id
        self.video_id = video_id
        self._tokens: list[tuple[ContextVar[Any], Any]] = []

    def __enter__(self) -> "OperationContext":
        """Enter context and set variables."""
        self.mutation_id = self.mutation_id or generate_mutation_id()
        self._tokens.append((mutation_id_var, mutation_id_var.set(self.mutation_id)))

        for var, value in (
            (user_id_var, self.user_id),
            (course_id_var, self.course_id),
            (video_id_var, self.video_id),
        ):
            if value is not None:
                self._tokens.append((var, var.set(str(value))))

        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
