"""KFP v2 components — each file exports one @dsl.component."""

from pipelines.components.chunk import chunk_digests
from pipelines.components.export import export_pending_digests
from pipelines.components.index import index_digests

__all__ = [
    "chunk_digests",
    "export_pending_digests",
    "index_digests",
]
