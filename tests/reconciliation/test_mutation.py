"""Tests for the mutation state machine."""

import pytest

from courseflow.reconciliation import (
    InvalidTransitionError,
    Mutation,
    MutationKind,
    MutationState,
)


def test_new_mutation_is_pending():
    mutation = Mutation(MutationKind.MOVE_ITEM, "item-1")

    assert mutation.state == MutationState.PENDING
    assert mutation.is_pending
    assert mutation.resolved_at is None
    assert mutation.notice is None


def test_commit():
    mutation = Mutation(MutationKind.MOVE_CHAPTER, "ch-1")

    mutation.commit()

    assert mutation.committed
    assert mutation.resolved_at >= mutation.created_at
    assert mutation.notice is None


def test_roll_back_records_error_and_notice():
    mutation = Mutation(MutationKind.REMOVE_ITEM, "item-1")

    mutation.roll_back("Remote store unavailable")

    assert mutation.rolled_back
    assert mutation.error == "Remote store unavailable"
    assert mutation.notice


@pytest.mark.parametrize("first", ["commit", "roll_back"])
def test_mutation_resolves_only_once(first):
    mutation = Mutation(MutationKind.CHECKPOINT, "video-1")
    if first == "commit":
        mutation.commit()
    else:
        mutation.roll_back("boom")

    with pytest.raises(InvalidTransitionError):
        mutation.commit()
    with pytest.raises(InvalidTransitionError):
        mutation.roll_back("again")
