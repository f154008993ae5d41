"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from context_indexing.indexing.coordinator import IndexingCoordinator
from context_indexing.models import Digest, ExtractionStatus, content_hash
from context_indexing.storage.memory import InMemoryChunkStore, InMemoryDigestStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class FakeEmbedder:
    """Deterministic stand-in for :class:`EmbeddingClient`.

    Each vector encodes the text length and its position in the call,
    so tests can check positional correspondence.
    """

    def __init__(self, dimensions: int = 4, max_batch_size: int = 2048) -> None:
        self.dimensions = dimensions
        self.max_batch_size = max_batch_size
        self.calls: list[list[str]] = []
        self.timeouts: list[float | None] = []
        self.error: Exception | None = None
        self.on_call: Callable[[list[str]], None] | None = None

    def embed(self, texts: list[str], *, timeout: float | None = None) -> list[list[float]]:
        self.calls.append(list(texts))
        self.timeouts.append(timeout)
        if self.on_call is not None:
            self.on_call(texts)
        if self.error is not None:
            raise self.error
        return [
            [float(len(text)), float(i)] + [0.0] * (self.dimensions - 2)
            for i, text in enumerate(texts)
        ]


@pytest.fixture()
def digest_store() -> InMemoryDigestStore:
    return InMemoryDigestStore()


@pytest.fixture()
def chunk_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def coordinator(
    digest_store: InMemoryDigestStore,
    chunk_store: InMemoryChunkStore,
    embedder: FakeEmbedder,
) -> IndexingCoordinator:
    return IndexingCoordinator(digest_store, chunk_store, embedder)


@pytest.fixture()
def make_digest(digest_store: InMemoryDigestStore) -> Callable[..., Digest]:
    """Create a digest whose extraction has completed with *content_md*."""

    def _make(
        digest_id: str = "dg-1",
        content_md: str | None = "## Intro\nHello world.",
        *,
        org_id: str | None = "org-1",
        extraction_status: ExtractionStatus = ExtractionStatus.completed,
        **fields,
    ) -> Digest:
        digest = Digest(
            id=digest_id,
            document_id=f"doc-{digest_id}",
            org_id=org_id,
            content_md=content_md,
            content_hash=content_hash(content_md) if content_md is not None else None,
            extraction_status=extraction_status,
            **fields,
        )
        return digest_store.create(digest)

    return _make
