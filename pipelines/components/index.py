"""KFP v2 component — Index exported digests.

Step 3 of the re-index pipeline.  Runs the indexing coordinator for
every exported digest: chunk, embed, replace the digest's chunks in
Chroma, and drive its ``embedding_status`` in the digest database.

Chunk ids are ``<digest_id>:<chunk_index>`` and a digest's old chunks
are deleted before the new ones are inserted, so re-runs replace rather
than accumulate.  The embedding API key is read from the
``OPENROUTER_API_KEY`` environment variable of the container.

Local testing
-------------
    from pipelines.components.index import index_digests
    index_digests.python_func(
        pending_digests=_FakeArtifact("/tmp/pending.jsonl"),
        database_url="sqlite:////tmp/digests.db",
        chroma_host="localhost",
        chroma_port=8000,
        collection_name="context_chunks",
        metrics=_FakeArtifact("/tmp/metrics"),
    )
"""

from kfp import dsl


@dsl.component(
    base_image="python:3.11-slim",
    packages_to_install=["context-indexing>=0.1,<1"],
)
def index_digests(
    pending_digests: dsl.Input[dsl.Dataset],
    database_url: str,
    chroma_host: str,
    chroma_port: int,
    collection_name: str,
    metrics: dsl.Output[dsl.Metrics],
    embedding_timeout: float = 30.0,
) -> str:
    """Chunk, embed, and store every exported digest.

    Parameters
    ----------
    pending_digests:
        Input Dataset — JSON-Lines produced by ``export_pending_digests``.
    database_url:
        SQLAlchemy URL of the digest database.
    chroma_host / chroma_port / collection_name:
        Chunk store location.
    metrics:
        Output Metrics artifact with indexing statistics.
    embedding_timeout:
        Per-request bound for the embedding service, in seconds.

    Returns
    -------
    str
        Summary, e.g. ``"Indexed 40 digests (2 failed)"``.
    """
    import json
    import logging
    import time

    from context_indexing.errors import IndexingError
    from context_indexing.indexing.coordinator import IndexingCoordinator
    from context_indexing.storage.chroma_store import ChromaChunkStore
    from context_indexing.storage.sql_store import SqlDigestStore

    logging.basicConfig(level=logging.INFO)
    log = logging.getLogger("index_digests")

    digest_ids: list[str] = []
    with open(pending_digests.path) as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                digest_ids.append(json.loads(line)["digest_id"])
            except (json.JSONDecodeError, KeyError) as exc:
                log.warning("Skipping malformed line %d: %s", lineno, exc)

    if not digest_ids:
        metrics.log_metric("digests_indexed", 0)
        return "No digests to index."

    coordinator = IndexingCoordinator(
        SqlDigestStore(database_url),
        ChromaChunkStore(collection_name, host=chroma_host, port=chroma_port),
    )

    indexed = 0
    errors: list[str] = []
    t0 = time.monotonic()
    for digest_id in digest_ids:
        try:
            coordinator.index_digest(digest_id, timeout=embedding_timeout)
            indexed += 1
            log.info("✓ %s", digest_id)
        except IndexingError as exc:
            errors.append(f"{digest_id}: {exc}")
            log.error("✗ %s: %s", digest_id, exc)
    elapsed = time.monotonic() - t0

    metrics.log_metric("digests_indexed", indexed)
    metrics.log_metric("digests_failed", len(errors))
    metrics.log_metric("index_elapsed_seconds", round(elapsed, 2))

    if not indexed and errors:
        raise RuntimeError("All digests failed:\n" + "\n".join(errors))

    msg = f"Indexed {indexed} digests ({len(errors)} failed) in {elapsed:.1f}s"
    log.info(msg)
    return msg
