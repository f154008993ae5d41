"""Context indexing — chunk extracted document markdown and index it for retrieval.

Public surface
--------------
- :class:`IndexingCoordinator` — drives one digest through chunk → embed → store.
- :func:`chunk_markdown` — heading-scoped, token-budgeted chunking.
- :class:`EmbeddingClient` — batched calls to the embedding service.
"""

from context_indexing.indexing.coordinator import IndexingCoordinator, ReindexSummary
from context_indexing.ingestion.chunker import chunk_markdown
from context_indexing.ingestion.embedder import EmbeddingClient

__all__ = [
    "EmbeddingClient",
    "IndexingCoordinator",
    "ReindexSummary",
    "chunk_markdown",
]
