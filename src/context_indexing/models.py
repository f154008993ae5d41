"""Domain models for digests, chunk candidates, and persisted chunk rows."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def content_hash(text: str) -> str:
    """Return the SHA-256 hex digest used for change detection of ``content_md``."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ExtractionStatus(str, Enum):
    """Lifecycle of the extraction stage that produces ``content_md``."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class EmbeddingStatus(str, Enum):
    """Lifecycle of chunking + embedding for a digest.

    Only the indexing coordinator writes this field; see
    :mod:`context_indexing.status` for the permitted transitions.
    """

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class Digest(BaseModel):
    """The latest extraction of one document and its processing status.

    Attributes
    ----------
    id:
        Digest identifier (one digest per document).
    document_id:
        The owning document.
    org_id:
        Owning organization, or ``None`` for global content.
    content_md:
        Extracted markdown; ``None`` until extraction completes.
    content_hash:
        SHA-256 of ``content_md``.
    extraction_status / extraction_error:
        Written by the extraction stage.
    embedding_status / embedding_error:
        Written by the indexing coordinator.
    created_at / updated_at:
        UTC timestamps; ``updated_at`` moves on every write.
    """

    id: str
    document_id: str
    org_id: str | None = None
    content_md: str | None = None
    content_hash: str | None = None
    extraction_status: ExtractionStatus = ExtractionStatus.pending
    extraction_error: str | None = None
    embedding_status: EmbeddingStatus = EmbeddingStatus.pending
    embedding_error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def has_content(self) -> bool:
        return bool(self.content_md and self.content_md.strip())


class ChunkCandidate(BaseModel):
    """One chunk produced by the chunker, before it is embedded."""

    chunk_index: int
    heading: str | None = None
    content: str
    token_count: int


class ChunkRecord(BaseModel):
    """A persisted chunk: candidate text plus its embedding and scoping."""

    digest_id: str
    chunk_index: int
    heading: str | None = None
    content: str
    token_count: int
    embedding: list[float]
    org_id: str | None = None

    @property
    def chunk_id(self) -> str:
        """Deterministic row id, stable across re-indexing of the same digest."""
        return f"{self.digest_id}:{self.chunk_index}"
