"""Unit tests for the embedding-status state machine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from context_indexing.errors import InvalidStatusTransition
from context_indexing.models import Digest, EmbeddingStatus
from context_indexing.status import can_transition, is_stale, transition

S = EmbeddingStatus


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.pending, S.processing),
        (S.processing, S.completed),
        (S.processing, S.failed),
        (S.completed, S.processing),
        (S.failed, S.processing),
    ],
)
def test_allowed_transitions(current, target) -> None:
    assert transition(current, target) is target


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.pending, S.completed),
        (S.pending, S.failed),
        (S.processing, S.processing),
        (S.processing, S.pending),
        (S.completed, S.failed),
        (S.failed, S.completed),
        (S.completed, S.pending),
    ],
)
def test_rejected_transitions(current, target) -> None:
    assert not can_transition(current, target)
    with pytest.raises(InvalidStatusTransition) as excinfo:
        transition(current, target)
    assert excinfo.value.current == current.value
    assert excinfo.value.target == target.value


def test_accepts_raw_string_values() -> None:
    assert transition("pending", "processing") is S.processing


class TestIsStale:
    NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def _digest(self, status: EmbeddingStatus, minutes_ago: int) -> Digest:
        return Digest(
            id="d",
            document_id="doc",
            embedding_status=status,
            updated_at=self.NOW - timedelta(minutes=minutes_ago),
        )

    def test_old_processing_is_stale(self) -> None:
        assert is_stale(self._digest(S.processing, 45), timedelta(minutes=30), self.NOW)

    def test_recent_processing_is_not_stale(self) -> None:
        assert not is_stale(self._digest(S.processing, 5), timedelta(minutes=30), self.NOW)

    def test_other_statuses_never_stale(self) -> None:
        for status in (S.pending, S.completed, S.failed):
            assert not is_stale(self._digest(status, 600), timedelta(minutes=30), self.NOW)

    def test_naive_timestamps_treated_as_utc(self) -> None:
        digest = self._digest(S.processing, 45)
        digest.updated_at = digest.updated_at.replace(tzinfo=None)
        assert is_stale(digest, timedelta(minutes=30), self.NOW)
