"""KFP v2 component — Chunk exported digests (dry run).

Step 2 of the re-index pipeline.  Runs the heading-scoped chunker over
every exported digest without embedding anything, so chunk-size
statistics are available before (or alongside) the real indexing run.

Structured output contract (one JSON object per line)::

    {
      "chunk_id":    "<digest_id>:<chunk_index>",
      "digest_id":   "<digest id>",
      "org_id":      "<owner scope or null>",
      "chunk_index": 0,
      "chunk_count": 12,
      "heading":     "<nearest ## / ### heading or null>",
      "content":     "<chunk text>",
      "token_count": 312
    }

Local testing
-------------
    from pipelines.components.chunk import chunk_digests
    chunk_digests.python_func(
        pending_digests=_FakeArtifact("/tmp/pending.jsonl"),
        chunked_digests=_FakeArtifact("/tmp/chunked.jsonl"),
        metrics=_FakeArtifact("/tmp/metrics"),
    )
"""

from kfp import dsl


@dsl.component(
    base_image="python:3.11-slim",
    packages_to_install=["context-indexing>=0.1,<1"],
)
def chunk_digests(
    pending_digests: dsl.Input[dsl.Dataset],
    chunked_digests: dsl.Output[dsl.Dataset],
    metrics: dsl.Output[dsl.Metrics],
    min_tokens: int = 200,
    max_tokens: int = 500,
    chars_per_token: int = 4,
) -> str:
    """Split each digest's markdown into chunk records.

    Parameters
    ----------
    pending_digests:
        Input Dataset — JSON-Lines produced by ``export_pending_digests``
        with at minimum ``digest_id`` and ``content_md`` keys.
    chunked_digests:
        Output Dataset — JSON-Lines, one record per chunk (see module docstring).
    metrics:
        Output Metrics artifact with chunking statistics.
    min_tokens / max_tokens:
        Target chunk size band in estimated tokens.
    chars_per_token:
        Characters per estimated token.

    Returns
    -------
    str
        Summary, e.g. ``"Produced 256 chunks from 42 digests"``.
    """
    import json
    import logging
    from pathlib import Path

    from context_indexing.ingestion.chunker import chunk_markdown

    logging.basicConfig(level=logging.INFO)
    log = logging.getLogger("chunk_digests")

    # ── validate params ───────────────────────────────────────────
    if min_tokens > max_tokens:
        raise ValueError(
            f"min_tokens ({min_tokens}) must be <= max_tokens ({max_tokens})"
        )

    # ── read digests ──────────────────────────────────────────────
    records: list[dict] = []
    with open(pending_digests.path) as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as exc:
                log.warning("Skipping malformed line %d: %s", lineno, exc)
                continue
            if "digest_id" not in obj:
                log.warning("Skipping line %d: missing 'digest_id' key", lineno)
                continue
            records.append(obj)

    log.info("Read %d digests from input artifact", len(records))

    # ── chunk each digest ─────────────────────────────────────────
    all_chunks: list[dict] = []
    oversized = 0
    for rec in records:
        chunks = chunk_markdown(
            rec.get("content_md") or "",
            min_tokens=min_tokens,
            max_tokens=max_tokens,
            chars_per_token=chars_per_token,
        )
        for chunk in chunks:
            if chunk.token_count > max_tokens:
                oversized += 1
            all_chunks.append({
                "chunk_id": f"{rec['digest_id']}:{chunk.chunk_index}",
                "digest_id": rec["digest_id"],
                "org_id": rec.get("org_id"),
                "chunk_index": chunk.chunk_index,
                "chunk_count": len(chunks),
                "heading": chunk.heading,
                "content": chunk.content,
                "token_count": chunk.token_count,
            })

    # ── write output ──────────────────────────────────────────────
    out_path = Path(chunked_digests.path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w") as fh:
        for chunk in all_chunks:
            fh.write(json.dumps(chunk, ensure_ascii=False) + "\n")

    chunked_digests.metadata["num_chunks"] = len(all_chunks)
    chunked_digests.metadata["num_digests"] = len(records)
    chunked_digests.metadata["max_tokens"] = max_tokens

    total_tokens = sum(c["token_count"] for c in all_chunks)
    metrics.log_metric("chunks_produced", len(all_chunks))
    metrics.log_metric("digests_processed", len(records))
    metrics.log_metric("oversized_paragraph_chunks", oversized)
    metrics.log_metric("avg_chunk_tokens",
                       total_tokens / len(all_chunks) if all_chunks else 0)

    msg = f"Produced {len(all_chunks)} chunks from {len(records)} digests"
    log.info(msg)
    return msg
