"""Dict-backed stores for local runs and tests."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from context_indexing.errors import DigestNotFound, StorageError
from context_indexing.models import ChunkRecord, Digest, EmbeddingStatus, ExtractionStatus
from context_indexing.storage.base import ChunkStore, DigestStore


class InMemoryDigestStore(DigestStore):
    """Thread-safe in-memory :class:`DigestStore`."""

    def __init__(self) -> None:
        self._digests: dict[str, Digest] = {}
        self._lock = threading.Lock()

    def get(self, digest_id: str) -> Digest | None:
        with self._lock:
            digest = self._digests.get(digest_id)
            return digest.model_copy() if digest else None

    def create(self, digest: Digest) -> Digest:
        with self._lock:
            if digest.id in self._digests:
                raise StorageError(f"Digest {digest.id!r} already exists")
            self._digests[digest.id] = digest.model_copy()
            return digest.model_copy()

    def update(self, digest_id: str, **fields: Any) -> Digest:
        with self._lock:
            current = self._digests.get(digest_id)
            if current is None:
                raise DigestNotFound(digest_id)
            unknown = set(fields) - set(Digest.model_fields)
            if unknown:
                raise StorageError(f"Unknown digest fields: {sorted(unknown)}")
            fields.setdefault("updated_at", datetime.now(timezone.utc))
            updated = current.model_copy(update=fields)
            self._digests[digest_id] = updated
            return updated.model_copy()

    def find(
        self,
        *,
        extraction_status: ExtractionStatus | None = None,
        embedding_statuses: Iterable[EmbeddingStatus] | None = None,
    ) -> list[Digest]:
        wanted = set(embedding_statuses) if embedding_statuses is not None else None
        with self._lock:
            matches = [
                d.model_copy()
                for d in self._digests.values()
                if (extraction_status is None or d.extraction_status == extraction_status)
                and (wanted is None or d.embedding_status in wanted)
            ]
        return sorted(matches, key=lambda d: d.created_at)


class InMemoryChunkStore(ChunkStore):
    """Thread-safe in-memory :class:`ChunkStore`."""

    def __init__(self) -> None:
        self._rows: dict[str, list[ChunkRecord]] = {}
        self._lock = threading.Lock()

    def delete_all_for_digest(self, digest_id: str) -> None:
        with self._lock:
            self._rows.pop(digest_id, None)

    def insert_batch(self, rows: list[ChunkRecord]) -> None:
        with self._lock:
            seen = {r.chunk_id for existing in self._rows.values() for r in existing}
            for row in rows:
                if row.chunk_id in seen:
                    raise StorageError(f"Duplicate chunk {row.chunk_id}")
                seen.add(row.chunk_id)
            for row in rows:
                self._rows.setdefault(row.digest_id, []).append(row.model_copy())

    def list_for_digest(self, digest_id: str) -> list[ChunkRecord]:
        with self._lock:
            rows = list(self._rows.get(digest_id, []))
        return sorted(rows, key=lambda r: r.chunk_index)
