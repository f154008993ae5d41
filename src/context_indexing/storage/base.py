"""Abstract contracts for the digest and chunk stores.

The indexing coordinator only talks to these interfaces, so a new
backend (Postgres + pgvector, Qdrant …) only requires subclassing and
implementing the abstract methods.  Implementations raise
:class:`~context_indexing.errors.StorageError` for backend failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from context_indexing.models import ChunkRecord, Digest, EmbeddingStatus, ExtractionStatus


class DigestStore(ABC):
    """One record per document: extracted text plus processing status."""

    @abstractmethod
    def get(self, digest_id: str) -> Digest | None:
        """Return the digest, or ``None`` when it does not exist."""
        ...

    @abstractmethod
    def create(self, digest: Digest) -> Digest:
        """Persist a new digest.  Raises ``StorageError`` if the id is taken."""
        ...

    @abstractmethod
    def update(self, digest_id: str, **fields: Any) -> Digest:
        """Apply *fields* to the digest and refresh ``updated_at``.

        Raises ``DigestNotFound`` when the digest does not exist.
        """
        ...

    @abstractmethod
    def find(
        self,
        *,
        extraction_status: ExtractionStatus | None = None,
        embedding_statuses: Iterable[EmbeddingStatus] | None = None,
    ) -> list[Digest]:
        """Return digests matching every given filter, ordered by creation time."""
        ...


class ChunkStore(ABC):
    """Searchable chunk rows with their embeddings."""

    @abstractmethod
    def delete_all_for_digest(self, digest_id: str) -> None:
        """Remove every chunk belonging to *digest_id*."""
        ...

    @abstractmethod
    def insert_batch(self, rows: list[ChunkRecord]) -> None:
        """Insert *rows* as one batch."""
        ...

    @abstractmethod
    def list_for_digest(self, digest_id: str) -> list[ChunkRecord]:
        """Return the chunks of *digest_id* ordered by ``chunk_index``."""
        ...
