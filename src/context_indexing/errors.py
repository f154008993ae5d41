"""Exception taxonomy for the indexing pipeline."""

from __future__ import annotations


class IndexingError(Exception):
    """Base class for every error raised by the indexing pipeline."""


class ExtractionNotReady(IndexingError):
    """Indexing was requested before extraction produced the digest's text."""


class ChunkingError(IndexingError):
    """The chunker received input it cannot treat as text."""


class EmbeddingServiceError(IndexingError):
    """The embedding service call failed or returned an unusable response.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    status_code:
        HTTP status returned by the service, when one was received.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(IndexingError):
    """A digest or chunk store operation failed."""


class DigestNotFound(StorageError):
    """No digest exists with the requested id."""

    def __init__(self, digest_id: str) -> None:
        super().__init__(f"Digest {digest_id!r} not found")
        self.digest_id = digest_id


class InvalidStatusTransition(IndexingError):
    """An embedding-status change not permitted by the state machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal embedding status transition {current!r} -> {target!r}")
        self.current = current
        self.target = target
