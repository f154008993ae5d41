"""
Indexing — drives a digest through chunking, embedding, and chunk replacement
while owning the digest's embedding status.
"""

from context_indexing.indexing.coordinator import IndexingCoordinator, ReindexSummary
from context_indexing.indexing.locks import KeyedLock

__all__ = ["IndexingCoordinator", "KeyedLock", "ReindexSummary"]
