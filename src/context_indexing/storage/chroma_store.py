"""Chroma implementation of the chunk store."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from context_indexing.config import settings
from context_indexing.errors import StorageError
from context_indexing.models import ChunkRecord
from context_indexing.storage.base import ChunkStore

logger = logging.getLogger(__name__)


def _to_metadata(row: ChunkRecord) -> dict[str, Any]:
    """Flatten a row's scalar fields; Chroma metadata cannot hold ``None``."""
    meta: dict[str, Any] = {
        "digest_id": row.digest_id,
        "chunk_index": row.chunk_index,
        "token_count": row.token_count,
    }
    if row.heading is not None:
        meta["heading"] = row.heading
    if row.org_id is not None:
        meta["org_id"] = row.org_id
    return meta


class ChromaChunkStore(ChunkStore):
    """Chroma-backed chunk store.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host / port:
        Chroma server location; ignored when *client* is given.
    client:
        Pre-built Chroma client.
    distance_metric:
        HNSW space for a newly created collection (``cosine`` | ``l2`` | ``ip``).
    insert_batch_size:
        Max records per ``add`` call.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any = None,
        distance_metric: str = "cosine",
        insert_batch_size: int = 5000,
    ) -> None:
        self.collection_name = collection_name
        self._client = client or chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": distance_metric},
        )
        self._insert_batch_size = insert_batch_size

    def delete_all_for_digest(self, digest_id: str) -> None:
        try:
            self._collection.delete(where={"digest_id": digest_id})
        except Exception as exc:
            raise StorageError(f"Failed to delete chunks for digest {digest_id!r}: {exc}") from exc

    def insert_batch(self, rows: list[ChunkRecord]) -> None:
        if not rows:
            return
        for start in range(0, len(rows), self._insert_batch_size):
            batch = rows[start : start + self._insert_batch_size]
            try:
                self._collection.add(
                    ids=[r.chunk_id for r in batch],
                    embeddings=[r.embedding for r in batch],
                    documents=[r.content for r in batch],
                    metadatas=[_to_metadata(r) for r in batch],
                )
            except Exception as exc:
                # Earlier slices are already stored; remove them with the failed one.
                self._discard([r.chunk_id for r in rows[: start + len(batch)]])
                raise StorageError(
                    f"Failed to insert chunks {start}-{start + len(batch)} "
                    f"into {self.collection_name!r}: {exc}"
                ) from exc
            logger.debug("Inserted chunk batch %d-%d", start, start + len(batch))

    def _discard(self, ids: list[str]) -> None:
        try:
            self._collection.delete(ids=ids)
        except Exception:
            logger.exception("Could not remove %d partially inserted chunks", len(ids))

    def list_for_digest(self, digest_id: str) -> list[ChunkRecord]:
        try:
            result = self._collection.get(
                where={"digest_id": digest_id},
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as exc:
            raise StorageError(f"Failed to read chunks for digest {digest_id!r}: {exc}") from exc

        documents = result.get("documents") or []
        metadatas = result.get("metadatas") or []
        embeddings = result.get("embeddings")
        if embeddings is None:
            embeddings = [[] for _ in documents]

        rows = [
            ChunkRecord(
                digest_id=meta["digest_id"],
                chunk_index=int(meta["chunk_index"]),
                heading=meta.get("heading"),
                content=content or "",
                token_count=int(meta.get("token_count", 0)),
                embedding=[float(v) for v in vector],
                org_id=meta.get("org_id"),
            )
            for content, meta, vector in zip(documents, metadatas, embeddings)
        ]
        return sorted(rows, key=lambda r: r.chunk_index)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
