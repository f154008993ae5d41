"""KFP v2 component — Export digests that need indexing.

Step 1 of the re-index pipeline.  Reads every digest whose extraction
has completed and whose embedding is ``pending`` or ``failed`` from the
digest database and writes them as a JSON-Lines Dataset.

Structured output contract (one JSON object per line)::

    {
      "digest_id":    "<digest id>",
      "document_id":  "<owning document>",
      "org_id":       "<owner scope or null>",
      "content_md":   "<extracted markdown>",
      "content_hash": "<sha256 of content_md>"
    }

Local testing
-------------
    from pipelines.components.export import export_pending_digests
    export_pending_digests.python_func(
        database_url="sqlite:////tmp/digests.db",
        pending_digests=_FakeArtifact("/tmp/pending.jsonl"),
        metrics=_FakeArtifact("/tmp/metrics"),
    )
"""

from kfp import dsl


@dsl.component(
    base_image="python:3.11-slim",
    packages_to_install=["context-indexing>=0.1,<1"],
)
def export_pending_digests(
    database_url: str,
    pending_digests: dsl.Output[dsl.Dataset],
    metrics: dsl.Output[dsl.Metrics],
) -> str:
    """Write every re-indexable digest to a JSON-Lines Dataset.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL of the digest database.
    pending_digests:
        Output Dataset — one record per digest (see module docstring).
    metrics:
        Output Metrics artifact with export statistics.

    Returns
    -------
    str
        Summary, e.g. ``"Exported 12 digests (2 without content)"``.
    """
    import json
    import logging
    from pathlib import Path

    from context_indexing.models import EmbeddingStatus, ExtractionStatus
    from context_indexing.storage.sql_store import SqlDigestStore

    logging.basicConfig(level=logging.INFO)
    log = logging.getLogger("export_pending_digests")

    store = SqlDigestStore(database_url)
    digests = store.find(
        extraction_status=ExtractionStatus.completed,
        embedding_statuses=[EmbeddingStatus.pending, EmbeddingStatus.failed],
    )
    empty = sum(1 for d in digests if not d.has_content)

    out_path = Path(pending_digests.path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w") as fh:
        for digest in digests:
            fh.write(json.dumps({
                "digest_id": digest.id,
                "document_id": digest.document_id,
                "org_id": digest.org_id,
                "content_md": digest.content_md or "",
                "content_hash": digest.content_hash,
            }, ensure_ascii=False) + "\n")

    pending_digests.metadata["num_digests"] = len(digests)
    pending_digests.metadata["num_empty"] = empty
    metrics.log_metric("digests_exported", len(digests))
    metrics.log_metric("digests_without_content", empty)

    msg = f"Exported {len(digests)} digests ({empty} without content)"
    log.info(msg)
    return msg
