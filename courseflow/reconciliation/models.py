"""Mutation state for optimistic local changes.

Each mutation moves exactly once out of PENDING:

    PENDING -> COMMITTED     remote write succeeded
    PENDING -> ROLLED_BACK   remote write failed; local state resynced
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4


class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class MutationKind(str, Enum):
    MOVE_ITEM = "move_item"
    MOVE_CHAPTER = "move_chapter"
    INSERT_ITEM = "insert_item"
    REMOVE_ITEM = "remove_item"
    INSERT_CHAPTER = "insert_chapter"
    REMOVE_CHAPTER = "remove_chapter"
    CHECKPOINT = "checkpoint"
    MARK_COMPLETE = "mark_complete"


class InvalidTransitionError(Exception):
    """Mutation resolved twice."""


class Mutation:
    """One optimistic change and its reconciliation outcome.

    Attributes:
        id: Mutation UUID (bound to log context while it runs)
        kind: What was changed
        target_id: Id of the item, chapter or video changed
        state: PENDING, COMMITTED or ROLLED_BACK
        error: Failure message when rolled back
        created_at: When the local change was applied
        resolved_at: When the remote outcome was known
    """

    def __init__(self, kind: MutationKind, target_id: str):
        self.id = str(uuid4())
        self.kind = kind
        self.target_id = target_id
        self.state = MutationState.PENDING
        self.error: str | None = None
        self.created_at = datetime.now(UTC)
        self.resolved_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.state == MutationState.PENDING

    @property
    def committed(self) -> bool:
        return self.state == MutationState.COMMITTED

    @property
    def rolled_back(self) -> bool:
        return self.state == MutationState.ROLLED_BACK

    @property
    def notice(self) -> str | None:
        """Non-fatal message for the user after a rollback."""
        if not self.rolled_back:
            return None
        return "Could not save your change; the latest saved version was restored."

    def _resolve(self, state: MutationState) -> None:
        if not self.is_pending:
            msg = f"Mutation {self.id} already {self.state.value}"
            raise InvalidTransitionError(msg)
        self.state = state
        self.resolved_at = datetime.now(UTC)

    def commit(self) -> None:
        self._resolve(MutationState.COMMITTED)

    def roll_back(self, error: str) -> None:
        self._resolve(MutationState.ROLLED_BACK)
        self.error = error

    def __repr__(self) -> str:
        return f"<Mutation {self.kind.value} target={self.target_id} {self.state.value}>"
