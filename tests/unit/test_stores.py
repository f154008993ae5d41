"""Unit tests for the digest and chunk stores."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from context_indexing.errors import DigestNotFound, StorageError
from context_indexing.models import ChunkRecord, Digest, EmbeddingStatus, ExtractionStatus
from context_indexing.storage.chroma_store import ChromaChunkStore
from context_indexing.storage.memory import InMemoryChunkStore, InMemoryDigestStore
from context_indexing.storage.sql_store import SqlDigestStore

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _digest(digest_id: str, **fields) -> Digest:
    fields.setdefault("created_at", T0)
    return Digest(id=digest_id, document_id=f"doc-{digest_id}", org_id="org-1", **fields)


def _row(digest_id: str = "dg-1", index: int = 0, **fields) -> ChunkRecord:
    fields.setdefault("embedding", [0.1, 0.2])
    return ChunkRecord(
        digest_id=digest_id,
        chunk_index=index,
        heading=fields.pop("heading", f"H{index}"),
        content=fields.pop("content", f"chunk {index}"),
        token_count=fields.pop("token_count", 2),
        **fields,
    )


@pytest.fixture()
def sql_store() -> SqlDigestStore:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    return SqlDigestStore(engine=engine)


@pytest.fixture(params=["memory", "sql"])
def any_digest_store(request, sql_store):
    return InMemoryDigestStore() if request.param == "memory" else sql_store


# ── Digest stores (shared contract) ─────────────────────────────────────


class TestDigestStoreContract:
    def test_create_and_get(self, any_digest_store) -> None:
        any_digest_store.create(_digest("dg-1", content_md="text"))

        loaded = any_digest_store.get("dg-1")

        assert loaded.id == "dg-1"
        assert loaded.content_md == "text"
        assert loaded.embedding_status == EmbeddingStatus.pending
        assert loaded.created_at == T0

    def test_get_missing(self, any_digest_store) -> None:
        assert any_digest_store.get("nope") is None

    def test_duplicate_create(self, any_digest_store) -> None:
        any_digest_store.create(_digest("dg-1"))
        with pytest.raises(StorageError):
            any_digest_store.create(_digest("dg-1"))

    def test_update_fields_and_timestamp(self, any_digest_store) -> None:
        any_digest_store.create(_digest("dg-1", updated_at=T0))

        updated = any_digest_store.update(
            "dg-1", embedding_status=EmbeddingStatus.failed, embedding_error="boom"
        )

        assert updated.embedding_status == EmbeddingStatus.failed
        assert updated.embedding_error == "boom"
        assert updated.updated_at > T0
        assert any_digest_store.get("dg-1").embedding_error == "boom"

    def test_update_missing(self, any_digest_store) -> None:
        with pytest.raises(DigestNotFound):
            any_digest_store.update("nope", embedding_error="x")

    def test_update_unknown_field(self, any_digest_store) -> None:
        any_digest_store.create(_digest("dg-1"))
        with pytest.raises(StorageError):
            any_digest_store.update("dg-1", colour="blue")

    def test_find_filters_and_orders(self, any_digest_store) -> None:
        any_digest_store.create(
            _digest("late", extraction_status=ExtractionStatus.completed,
                    created_at=T0 + timedelta(hours=1))
        )
        any_digest_store.create(_digest("early", extraction_status=ExtractionStatus.completed))
        any_digest_store.create(
            _digest("failed", extraction_status=ExtractionStatus.completed,
                    embedding_status=EmbeddingStatus.failed,
                    created_at=T0 + timedelta(hours=2))
        )
        any_digest_store.create(
            _digest("done", extraction_status=ExtractionStatus.completed,
                    embedding_status=EmbeddingStatus.completed)
        )
        any_digest_store.create(_digest("raw", created_at=T0 + timedelta(hours=3)))

        found = any_digest_store.find(
            extraction_status=ExtractionStatus.completed,
            embedding_statuses=[EmbeddingStatus.pending, EmbeddingStatus.failed],
        )

        assert [d.id for d in found] == ["early", "late", "failed"]
        assert len(any_digest_store.find()) == 5


def test_sql_store_returns_aware_timestamps(sql_store) -> None:
    sql_store.create(_digest("dg-1"))
    assert sql_store.get("dg-1").updated_at.tzinfo is not None


# ── In-memory chunk store ───────────────────────────────────────────────


class TestInMemoryChunkStore:
    def test_insert_and_list_sorted(self) -> None:
        store = InMemoryChunkStore()
        store.insert_batch([_row(index=1), _row(index=0)])
        assert [r.chunk_index for r in store.list_for_digest("dg-1")] == [0, 1]

    def test_delete_only_touches_one_digest(self) -> None:
        store = InMemoryChunkStore()
        store.insert_batch([_row("dg-1"), _row("dg-2")])
        store.delete_all_for_digest("dg-1")
        assert store.list_for_digest("dg-1") == []
        assert len(store.list_for_digest("dg-2")) == 1

    def test_duplicate_in_batch_writes_nothing(self) -> None:
        store = InMemoryChunkStore()
        with pytest.raises(StorageError):
            store.insert_batch([_row(index=0), _row(index=0)])
        assert store.list_for_digest("dg-1") == []

    def test_duplicate_against_stored_rows(self) -> None:
        store = InMemoryChunkStore()
        store.insert_batch([_row(index=0)])
        with pytest.raises(StorageError):
            store.insert_batch([_row(index=0)])


# ── Chroma chunk store ──────────────────────────────────────────────────


class TestChromaChunkStore:
    @pytest.fixture()
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def collection(self, client) -> MagicMock:
        return client.get_or_create_collection.return_value

    def test_creates_collection_with_metric(self, client) -> None:
        ChromaChunkStore("chunks", client=client, distance_metric="l2")
        client.get_or_create_collection.assert_called_once_with(
            name="chunks", metadata={"hnsw:space": "l2"}
        )

    def test_insert_batch_maps_rows(self, client, collection) -> None:
        store = ChromaChunkStore("chunks", client=client)

        store.insert_batch([_row(index=0, org_id="org-1"), _row(index=1, heading=None)])

        kwargs = collection.add.call_args.kwargs
        assert kwargs["ids"] == ["dg-1:0", "dg-1:1"]
        assert kwargs["documents"] == ["chunk 0", "chunk 1"]
        assert kwargs["embeddings"] == [[0.1, 0.2], [0.1, 0.2]]
        assert kwargs["metadatas"][0] == {
            "digest_id": "dg-1",
            "chunk_index": 0,
            "token_count": 2,
            "heading": "H0",
            "org_id": "org-1",
        }
        assert "heading" not in kwargs["metadatas"][1]
        assert "org_id" not in kwargs["metadatas"][1]

    def test_insert_splits_large_batches(self, client, collection) -> None:
        store = ChromaChunkStore("chunks", client=client, insert_batch_size=2)
        store.insert_batch([_row(index=i) for i in range(5)])
        assert collection.add.call_count == 3

    def test_insert_empty_is_noop(self, client, collection) -> None:
        ChromaChunkStore("chunks", client=client).insert_batch([])
        collection.add.assert_not_called()

    def test_delete_filters_by_digest(self, client, collection) -> None:
        ChromaChunkStore("chunks", client=client).delete_all_for_digest("dg-7")
        collection.delete.assert_called_once_with(where={"digest_id": "dg-7"})

    def test_backend_errors_become_storage_errors(self, client, collection) -> None:
        collection.add.side_effect = RuntimeError("connection reset")
        store = ChromaChunkStore("chunks", client=client)
        with pytest.raises(StorageError, match="connection reset"):
            store.insert_batch([_row()])

    def test_failed_slice_removes_earlier_slices(self, client, collection) -> None:
        stored: dict[str, dict] = {}

        def add(ids, embeddings, documents, metadatas) -> None:
            if "dg-1:2" in ids:
                raise RuntimeError("quota exceeded")
            for chunk_id, meta in zip(ids, metadatas):
                stored[chunk_id] = meta

        def delete(ids=None, where=None) -> None:
            for chunk_id in ids or []:
                stored.pop(chunk_id, None)

        collection.add.side_effect = add
        collection.delete.side_effect = delete
        store = ChromaChunkStore("chunks", client=client, insert_batch_size=2)

        with pytest.raises(StorageError, match="quota exceeded"):
            store.insert_batch([_row(index=i) for i in range(4)])

        assert stored == {}
        collection.delete.assert_called_once_with(ids=["dg-1:0", "dg-1:1", "dg-1:2", "dg-1:3"])

    def test_cleanup_failure_still_raises_insert_error(self, client, collection) -> None:
        collection.add.side_effect = [None, RuntimeError("quota exceeded")]
        collection.delete.side_effect = RuntimeError("unreachable")
        store = ChromaChunkStore("chunks", client=client, insert_batch_size=1)

        with pytest.raises(StorageError, match="quota exceeded"):
            store.insert_batch([_row(index=0), _row(index=1)])

    def test_list_for_digest_rebuilds_rows(self, client, collection) -> None:
        collection.get.return_value = {
            "ids": ["dg-1:1", "dg-1:0"],
            "documents": ["second", "first"],
            "metadatas": [
                {"digest_id": "dg-1", "chunk_index": 1, "token_count": 2},
                {"digest_id": "dg-1", "chunk_index": 0, "token_count": 1,
                 "heading": "Intro", "org_id": "org-1"},
            ],
            "embeddings": [[0.5, 0.6], [0.1, 0.2]],
        }
        store = ChromaChunkStore("chunks", client=client)

        rows = store.list_for_digest("dg-1")

        assert [r.content for r in rows] == ["first", "second"]
        assert rows[0].heading == "Intro"
        assert rows[0].org_id == "org-1"
        assert rows[1].heading is None
        assert rows[1].embedding == [0.5, 0.6]

    def test_health_check(self, client) -> None:
        store = ChromaChunkStore("chunks", client=client)
        assert store.health_check() is True
        client.heartbeat.side_effect = ConnectionError("down")
        assert store.health_check() is False
