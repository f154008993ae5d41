"""Indexing coordinator: chunk, embed, and replace a digest's chunks.

One :meth:`IndexingCoordinator.index` call is one indexing pass:

1. ``embedding_status`` → ``processing``
2. chunk the markdown (an empty result clears old chunks and completes)
3. embed every chunk, preserving order
4. delete the digest's existing chunks
5. insert the new chunk rows as one batch
6. ``embedding_status`` → ``completed``

Any failure in steps 2–6 moves the digest to ``failed`` before the
exception propagates, so a returned call never leaves ``processing``
behind.  Calls for the same digest are serialised with a keyed lock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from context_indexing.config import settings
from context_indexing.errors import (
    DigestNotFound,
    ExtractionNotReady,
    IndexingError,
)
from context_indexing.indexing.locks import KeyedLock
from context_indexing.ingestion.chunker import chunk_markdown
from context_indexing.ingestion.embedder import EmbeddingClient
from context_indexing.models import (
    ChunkRecord,
    Digest,
    EmbeddingStatus,
    ExtractionStatus,
)
from context_indexing.status import is_stale, transition
from context_indexing.storage.base import ChunkStore, DigestStore

logger = logging.getLogger(__name__)

# Digests eligible for a batch re-index.  ``processing`` is left alone:
# it is either in flight or waiting for :meth:`recover_stale`.
_REINDEXABLE = (EmbeddingStatus.pending, EmbeddingStatus.failed)


def _default_stale_after() -> timedelta | None:
    minutes = settings.stale_processing_minutes
    return timedelta(minutes=minutes) if minutes > 0 else None


class ReindexSummary(BaseModel):
    """Outcome of :meth:`IndexingCoordinator.reindex_pending`."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class IndexingCoordinator:
    """Owns the embedding-status state machine and the chunk replacement.

    Parameters
    ----------
    digest_store:
        Where digest records and their statuses live.
    chunk_store:
        Where chunk rows and vectors are persisted.
    embedder:
        Embedding client; built from settings when omitted.
    min_tokens / max_tokens / chars_per_token:
        Chunk sizing, forwarded to :func:`chunk_markdown`.
    stale_after:
        Age beyond which a ``processing`` digest is recovered by
        :meth:`recover_stale`; ``None`` disables the sweep.
    locks:
        Keyed lock shared by coordinators in the same process.
    """

    def __init__(
        self,
        digest_store: DigestStore,
        chunk_store: ChunkStore,
        embedder: EmbeddingClient | None = None,
        *,
        min_tokens: int = settings.chunk_min_tokens,
        max_tokens: int = settings.chunk_max_tokens,
        chars_per_token: int = settings.chars_per_token,
        stale_after: timedelta | None = _default_stale_after(),
        locks: KeyedLock | None = None,
    ) -> None:
        self._digests = digest_store
        self._chunks = chunk_store
        self._embedder = embedder or EmbeddingClient()
        self._min_tokens = min_tokens
        self._max_tokens = max_tokens
        self._chars_per_token = chars_per_token
        self._stale_after = stale_after
        self._locks = locks or KeyedLock()

    @classmethod
    def from_settings(cls) -> IndexingCoordinator:
        """Build a coordinator wired to the configured SQL and Chroma stores."""
        from context_indexing.storage.chroma_store import ChromaChunkStore
        from context_indexing.storage.sql_store import SqlDigestStore

        return cls(SqlDigestStore(settings.database_url), ChromaChunkStore())

    @property
    def digest_store(self) -> DigestStore:
        return self._digests

    @property
    def chunk_store(self) -> ChunkStore:
        return self._chunks

    # -- public API -----------------------------------------------------------

    def index(
        self,
        digest_id: str,
        org_id: str | None,
        markdown: str | None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Run one full indexing pass for *digest_id*.

        Parameters
        ----------
        digest_id:
            Digest whose chunks are replaced.
        org_id:
            Owner scope stamped on every chunk row (``None`` for global content).
        markdown:
            Extracted text to chunk.  Blank text completes with zero chunks.
        timeout:
            Bound for each embedding request.

        Raises
        ------
        DigestNotFound, ExtractionNotReady, InvalidStatusTransition
            Before any status change.
        IndexingError
            Any chunking, embedding, or storage failure, after the digest
            has been marked ``failed``.
        """
        with self._locks.hold(digest_id):
            digest = self._require_ready(digest_id)
            self._set_status(digest_id, digest.embedding_status, EmbeddingStatus.processing)
            logger.info("Indexing digest %s", digest_id)

            try:
                count = self._run(digest_id, org_id, markdown, timeout)
                self._set_status(
                    digest_id,
                    EmbeddingStatus.processing,
                    EmbeddingStatus.completed,
                    embedding_error=None,
                )
            except Exception as exc:
                logger.exception("Failed to index digest %s", digest_id)
                self._mark_failed(digest_id, exc)
                raise

        logger.info("Indexed %d chunks for digest %s", count, digest_id)

    def index_digest(self, digest_id: str, *, timeout: float | None = None) -> None:
        """Index the digest's stored ``content_md`` under its own ``org_id``."""
        digest = self._require_ready(digest_id)
        self.index(digest.id, digest.org_id, digest.content_md or "", timeout=timeout)

    def reindex_pending(self, *, timeout: float | None = None) -> ReindexSummary:
        """Re-index every extracted digest whose embedding is pending or failed.

        Digests with blank content are counted as failures and skipped.
        A failure for one digest never stops the batch.
        """
        digests = self._digests.find(
            extraction_status=ExtractionStatus.completed,
            embedding_statuses=_REINDEXABLE,
        )
        summary = ReindexSummary(total=len(digests))

        for digest in digests:
            if not digest.has_content:
                summary.failed += 1
                summary.errors.append(f"{digest.id}: no content_md")
                continue
            try:
                self.index(digest.id, digest.org_id, digest.content_md, timeout=timeout)
            except IndexingError as exc:
                summary.failed += 1
                summary.errors.append(f"{digest.id}: {exc}")
            else:
                summary.succeeded += 1

        logger.info(
            "Re-index finished: %d/%d succeeded, %d failed",
            summary.succeeded,
            summary.total,
            summary.failed,
        )
        return summary

    def recover_stale(self, now: datetime | None = None) -> list[str]:
        """Move digests stuck in ``processing`` past the staleness limit to ``failed``.

        Returns the ids of the recovered digests.
        """
        if self._stale_after is None:
            return []

        recovered: list[str] = []
        for candidate in self._digests.find(embedding_statuses=[EmbeddingStatus.processing]):
            if not is_stale(candidate, self._stale_after, now):
                continue
            with self._locks.hold(candidate.id):
                digest = self._digests.get(candidate.id)
                if digest is None or not is_stale(digest, self._stale_after, now):
                    continue
                self._set_status(
                    digest.id,
                    EmbeddingStatus.processing,
                    EmbeddingStatus.failed,
                    embedding_error=f"Indexing stalled in processing for over {self._stale_after}",
                )
            logger.warning("Recovered stale digest %s", digest.id)
            recovered.append(digest.id)
        return recovered

    # -- internals ------------------------------------------------------------

    def _require_ready(self, digest_id: str) -> Digest:
        digest = self._digests.get(digest_id)
        if digest is None:
            raise DigestNotFound(digest_id)
        if digest.extraction_status != ExtractionStatus.completed:
            raise ExtractionNotReady(
                f"Digest {digest_id!r} extraction is {digest.extraction_status.value}"
            )
        return digest

    def _run(
        self,
        digest_id: str,
        org_id: str | None,
        markdown: str | None,
        timeout: float | None,
    ) -> int:
        candidates = chunk_markdown(
            markdown,
            min_tokens=self._min_tokens,
            max_tokens=self._max_tokens,
            chars_per_token=self._chars_per_token,
        )
        if not candidates:
            self._chunks.delete_all_for_digest(digest_id)
            return 0

        vectors = self._embed([c.content for c in candidates], timeout)
        rows = [
            ChunkRecord(
                digest_id=digest_id,
                chunk_index=candidate.chunk_index,
                heading=candidate.heading,
                content=candidate.content,
                token_count=candidate.token_count,
                embedding=vector,
                org_id=org_id,
            )
            for candidate, vector in zip(candidates, vectors)
        ]

        self._chunks.delete_all_for_digest(digest_id)
        self._chunks.insert_batch(rows)
        return len(rows)

    def _embed(self, texts: list[str], timeout: float | None) -> list[list[float]]:
        """Embed *texts*, splitting at the client's batch limit."""
        size = self._embedder.max_batch_size
        vectors: list[list[float]] = []
        for start in range(0, len(texts), size):
            vectors.extend(self._embedder.embed(texts[start : start + size], timeout=timeout))
        return vectors

    def _set_status(
        self,
        digest_id: str,
        current: EmbeddingStatus,
        target: EmbeddingStatus,
        **extra: Any,
    ) -> None:
        self._digests.update(digest_id, embedding_status=transition(current, target), **extra)

    def _mark_failed(self, digest_id: str, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        try:
            self._set_status(
                digest_id,
                EmbeddingStatus.processing,
                EmbeddingStatus.failed,
                embedding_error=message,
            )
        except IndexingError:
            logger.exception("Could not record failure for digest %s", digest_id)
