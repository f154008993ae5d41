"""Embedding-status state machine.

::

    pending ──▶ processing ──▶ completed
                    │
                    └────────▶ failed

``completed`` and ``failed`` may re-enter ``processing`` when a fresh
indexing pass starts.  No transition skips ``processing``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from context_indexing.errors import InvalidStatusTransition
from context_indexing.models import Digest, EmbeddingStatus

_ALLOWED: dict[EmbeddingStatus, frozenset[EmbeddingStatus]] = {
    EmbeddingStatus.pending: frozenset({EmbeddingStatus.processing}),
    EmbeddingStatus.processing: frozenset({EmbeddingStatus.completed, EmbeddingStatus.failed}),
    EmbeddingStatus.completed: frozenset({EmbeddingStatus.processing}),
    EmbeddingStatus.failed: frozenset({EmbeddingStatus.processing}),
}


def can_transition(current: EmbeddingStatus, target: EmbeddingStatus) -> bool:
    return target in _ALLOWED[EmbeddingStatus(current)]


def transition(current: EmbeddingStatus, target: EmbeddingStatus) -> EmbeddingStatus:
    """Validate ``current -> target`` and return *target*.

    Raises
    ------
    InvalidStatusTransition
        When the state machine does not permit the change.
    """
    current = EmbeddingStatus(current)
    target = EmbeddingStatus(target)
    if not can_transition(current, target):
        raise InvalidStatusTransition(current.value, target.value)
    return target


def is_stale(digest: Digest, max_age: timedelta, now: datetime | None = None) -> bool:
    """Return ``True`` when *digest* has sat in ``processing`` longer than *max_age*."""
    if digest.embedding_status != EmbeddingStatus.processing:
        return False
    now = now or datetime.now(timezone.utc)
    updated_at = digest.updated_at
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return now - updated_at > max_age
