"""
Storage — digest records and searchable chunk rows.

Public surface
--------------
- :class:`DigestStore` / :class:`ChunkStore` — abstract contracts.
- :class:`InMemoryDigestStore` / :class:`InMemoryChunkStore` — dict-backed.
- :class:`SqlDigestStore` — SQLAlchemy-backed digest table.
- :class:`ChromaChunkStore` — Chroma-backed chunk collection.
"""

from context_indexing.storage.base import ChunkStore, DigestStore
from context_indexing.storage.memory import InMemoryChunkStore, InMemoryDigestStore

__all__ = [
    "ChromaChunkStore",
    "ChunkStore",
    "DigestStore",
    "InMemoryChunkStore",
    "InMemoryDigestStore",
    "SqlDigestStore",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import backend stores to avoid pulling in chromadb / sqlalchemy at import time."""
    if name == "ChromaChunkStore":
        from context_indexing.storage.chroma_store import ChromaChunkStore

        return ChromaChunkStore
    if name == "SqlDigestStore":
        from context_indexing.storage.sql_store import SqlDigestStore

        return SqlDigestStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
