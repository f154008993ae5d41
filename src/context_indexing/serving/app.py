"""FastAPI application exposing digest registration and indexing triggers."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, status
from pydantic import BaseModel

from context_indexing.digests import record_extraction, register_document
from context_indexing.errors import DigestNotFound, StorageError
from context_indexing.indexing.coordinator import IndexingCoordinator, ReindexSummary
from context_indexing.models import Digest, EmbeddingStatus, ExtractionStatus
from context_indexing.storage.base import DigestStore

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Context Indexing API",
    version="0.1.0",
    description="Registers extracted documents and indexes them for retrieval.",
)


# ── Dependencies ──────────────────────────────────────────────────────
@lru_cache(maxsize=1)
def _default_coordinator() -> IndexingCoordinator:
    return IndexingCoordinator.from_settings()


def get_coordinator() -> IndexingCoordinator:
    return _default_coordinator()


def get_digest_store(coordinator: IndexingCoordinator = Depends(get_coordinator)) -> DigestStore:
    return coordinator.digest_store


# ── Request / Response schemas ────────────────────────────────────────
class RegisterRequest(BaseModel):
    """A newly registered document."""

    document_id: str
    org_id: str | None = None
    digest_id: str | None = None


class ContentRequest(BaseModel):
    """Markdown produced by the extraction stage."""

    content_md: str


class DigestStatus(BaseModel):
    """Processing status of one digest."""

    digest_id: str
    document_id: str
    org_id: str | None = None
    content_hash: str | None = None
    extraction_status: ExtractionStatus
    extraction_error: str | None = None
    embedding_status: EmbeddingStatus
    embedding_error: str | None = None
    updated_at: datetime

    @classmethod
    def from_digest(cls, digest: Digest) -> DigestStatus:
        return cls(
            digest_id=digest.id,
            document_id=digest.document_id,
            org_id=digest.org_id,
            content_hash=digest.content_hash,
            extraction_status=digest.extraction_status,
            extraction_error=digest.extraction_error,
            embedding_status=digest.embedding_status,
            embedding_error=digest.embedding_error,
            updated_at=digest.updated_at,
        )


class IndexAccepted(BaseModel):
    """Indexing has been scheduled; poll the digest for the outcome."""

    digest_id: str
    scheduled: bool = True


class RecoverResponse(BaseModel):
    recovered: list[str]


# ── Helpers ───────────────────────────────────────────────────────────
def _run_index(coordinator: IndexingCoordinator, digest_id: str) -> None:
    """Background task body; failures are visible through the digest status."""
    try:
        coordinator.index_digest(digest_id)
    except Exception as exc:
        logger.error("Background indexing failed for digest %s: %s", digest_id, exc)


def _load(store: DigestStore, digest_id: str) -> Digest:
    digest = store.get(digest_id)
    if digest is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Digest {digest_id!r} not found")
    return digest


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/digests", response_model=DigestStatus, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, store: DigestStore = Depends(get_digest_store)) -> DigestStatus:
    """Create the pending digest for a newly registered document."""
    try:
        digest = register_document(
            store, request.document_id, request.org_id, digest_id=request.digest_id
        )
    except StorageError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return DigestStatus.from_digest(digest)


@app.get("/digests/{digest_id}", response_model=DigestStatus)
def get_digest(digest_id: str, store: DigestStore = Depends(get_digest_store)) -> DigestStatus:
    """Return the extraction and embedding status of a digest."""
    return DigestStatus.from_digest(_load(store, digest_id))


@app.put(
    "/digests/{digest_id}/content",
    response_model=IndexAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def put_content(
    digest_id: str,
    request: ContentRequest,
    background_tasks: BackgroundTasks,
    coordinator: IndexingCoordinator = Depends(get_coordinator),
) -> IndexAccepted:
    """Record extracted markdown, then index it without blocking the response."""
    try:
        record_extraction(coordinator.digest_store, digest_id, request.content_md)
    except DigestNotFound as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    background_tasks.add_task(_run_index, coordinator, digest_id)
    return IndexAccepted(digest_id=digest_id)


@app.post(
    "/digests/{digest_id}/index",
    response_model=IndexAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_index(
    digest_id: str,
    background_tasks: BackgroundTasks,
    coordinator: IndexingCoordinator = Depends(get_coordinator),
) -> IndexAccepted:
    """Schedule a (re-)index of the digest's stored content."""
    digest = _load(coordinator.digest_store, digest_id)
    if digest.extraction_status != ExtractionStatus.completed:
        raise HTTPException(
            status.HTTP_409_CONFLICT,
            detail=f"Extraction is {digest.extraction_status.value}; nothing to index yet",
        )
    if digest.embedding_status == EmbeddingStatus.processing:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Indexing already in progress")
    background_tasks.add_task(_run_index, coordinator, digest_id)
    return IndexAccepted(digest_id=digest_id)


@app.post("/reindex", response_model=ReindexSummary)
def reindex(coordinator: IndexingCoordinator = Depends(get_coordinator)) -> ReindexSummary:
    """Re-index every extracted digest whose embedding is pending or failed."""
    return coordinator.reindex_pending()


@app.post("/maintenance/recover-stale", response_model=RecoverResponse)
def recover_stale(coordinator: IndexingCoordinator = Depends(get_coordinator)) -> RecoverResponse:
    """Fail digests stuck in ``processing`` so they can be retried."""
    return RecoverResponse(recovered=coordinator.recover_stale())
