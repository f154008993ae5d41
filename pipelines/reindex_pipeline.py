"""KFP v2 pipeline — Batch re-index of extracted digests.

Picks up every digest whose extraction completed but whose embedding is
``pending`` or ``failed`` and runs it through the indexing coordinator:

    export → index
           ↘ chunk (dry-run statistics)

Compile
-------
    python -m pipelines.reindex_pipeline --compile
"""

from kfp import compiler, dsl

from pipelines.components.chunk import chunk_digests
from pipelines.components.export import export_pending_digests
from pipelines.components.index import index_digests


# ──────────────────────────────────────────────────────────────────────
# Pipeline definition
# ──────────────────────────────────────────────────────────────────────


@dsl.pipeline(
    name="context-reindex-pipeline",
    description=(
        "Re-index extracted digests: export pending digests → chunk, "
        "embed, and replace their chunks in the vector store."
    ),
)
def reindex_pipeline(
    # ── Digest store ───────────────────────────────────────────────
    database_url: str = "postgresql+psycopg://indexer@digests-db:5432/digests",
    # ── Chunking ───────────────────────────────────────────────────
    min_tokens: int = 200,
    max_tokens: int = 500,
    chars_per_token: int = 4,
    # ── Embedding ──────────────────────────────────────────────────
    embedding_timeout: float = 30.0,
    # ── Vector DB ──────────────────────────────────────────────────
    chroma_host: str = "chroma.kubeflow.svc.cluster.local",
    chroma_port: int = 8000,
    collection_name: str = "context_chunks",
) -> None:
    """Export → index, with chunk statistics computed alongside.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL of the digest database.
    min_tokens / max_tokens / chars_per_token:
        Chunk sizing for the dry-run statistics step.
    embedding_timeout:
        Per-request bound for the embedding service, in seconds.
    chroma_host / chroma_port / collection_name:
        Chroma connection details.
    """
    export_task = export_pending_digests(database_url=database_url)

    chunk_digests(
        pending_digests=export_task.outputs["pending_digests"],
        min_tokens=min_tokens,
        max_tokens=max_tokens,
        chars_per_token=chars_per_token,
    )

    index_digests(
        pending_digests=export_task.outputs["pending_digests"],
        database_url=database_url,
        chroma_host=chroma_host,
        chroma_port=chroma_port,
        collection_name=collection_name,
        embedding_timeout=embedding_timeout,
    )


# ──────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Context re-index pipeline")
    parser.add_argument(
        "--compile",
        action="store_true",
        help="Compile pipeline to YAML",
    )
    parser.add_argument(
        "--output",
        default="pipelines/compiled/reindex_pipeline.yaml",
        help="Output path for compiled YAML",
    )
    args = parser.parse_args()

    if args.compile:
        compiler.Compiler().compile(reindex_pipeline, args.output)
        print(f"Pipeline compiled → {args.output}")
