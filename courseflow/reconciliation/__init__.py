"""Optimistic local state reconciled against the remote store.

Provides:
- Mutation lifecycle (pending, committed, rolled back)
- Content reconciler for instructor edits to the course tree
- Progress reconciler and learner session for watch progress
"""

from .content import MUTATION_HISTORY_SIZE, ContentNotLoadedError, ContentReconciler
from .models import InvalidTransitionError, Mutation, MutationKind, MutationState
from .progress import LearnerCourseSession, ProgressReconciler


__all__ = [
    "MUTATION_HISTORY_SIZE",
    "ContentNotLoadedError",
    "ContentReconciler",
    "InvalidTransitionError",
    "LearnerCourseSession",
    "Mutation",
    "MutationKind",
    "MutationState",
    "ProgressReconciler",
]
