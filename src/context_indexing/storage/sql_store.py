"""SQLAlchemy implementation of the digest store."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, Enum, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from context_indexing.config import settings
from context_indexing.errors import DigestNotFound, StorageError
from context_indexing.models import Digest, EmbeddingStatus, ExtractionStatus
from context_indexing.storage.base import DigestStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class Base(DeclarativeBase):
    pass


class DigestRow(Base):
    """ORM row for ``document_digests``; one row per document."""

    __tablename__ = "document_digests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    org_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    content_md: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    extraction_status: Mapped[ExtractionStatus] = mapped_column(
        Enum(ExtractionStatus, native_enum=False),
        nullable=False,
        default=ExtractionStatus.pending,
    )
    extraction_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    embedding_status: Mapped[EmbeddingStatus] = mapped_column(
        Enum(EmbeddingStatus, native_enum=False),
        nullable=False,
        default=EmbeddingStatus.pending,
        index=True,
    )
    embedding_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_model(self) -> Digest:
        return Digest(
            id=self.id,
            document_id=self.document_id,
            org_id=self.org_id,
            content_md=self.content_md,
            content_hash=self.content_hash,
            extraction_status=self.extraction_status,
            extraction_error=self.extraction_error,
            embedding_status=self.embedding_status,
            embedding_error=self.embedding_error,
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )


_UPDATABLE = frozenset(Digest.model_fields) - {"id", "created_at"}


class SqlDigestStore(DigestStore):
    """Digest store backed by a relational database.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL, used when *engine* is not given.
    engine:
        Pre-built engine (tests pass an in-memory SQLite engine).
    create_tables:
        Issue ``CREATE TABLE IF NOT EXISTS`` on construction.
    """

    def __init__(
        self,
        database_url: str = settings.database_url,
        *,
        engine: Engine | None = None,
        create_tables: bool = True,
    ) -> None:
        self._engine = engine or create_engine(database_url, pool_pre_ping=True)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        if create_tables:
            Base.metadata.create_all(self._engine)

    def _session(self) -> Session:
        return self._session_factory()

    def get(self, digest_id: str) -> Digest | None:
        try:
            with self._session() as session:
                row = session.get(DigestRow, digest_id)
                return row.to_model() if row else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load digest {digest_id!r}: {exc}") from exc

    def create(self, digest: Digest) -> Digest:
        row = DigestRow(**digest.model_dump())
        try:
            with self._session() as session, session.begin():
                session.add(row)
        except IntegrityError as exc:
            raise StorageError(f"Digest {digest.id!r} already exists") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create digest {digest.id!r}: {exc}") from exc
        return row.to_model()

    def update(self, digest_id: str, **fields: Any) -> Digest:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise StorageError(f"Unknown digest fields: {sorted(unknown)}")
        fields.setdefault("updated_at", _utcnow())
        try:
            with self._session() as session, session.begin():
                row = session.get(DigestRow, digest_id)
                if row is None:
                    raise DigestNotFound(digest_id)
                for name, value in fields.items():
                    setattr(row, name, value)
                session.flush()
                return row.to_model()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update digest {digest_id!r}: {exc}") from exc

    def find(
        self,
        *,
        extraction_status: ExtractionStatus | None = None,
        embedding_statuses: Iterable[EmbeddingStatus] | None = None,
    ) -> list[Digest]:
        stmt = select(DigestRow).order_by(DigestRow.created_at)
        if extraction_status is not None:
            stmt = stmt.where(DigestRow.extraction_status == extraction_status)
        if embedding_statuses is not None:
            stmt = stmt.where(DigestRow.embedding_status.in_(list(embedding_statuses)))
        try:
            with self._session() as session:
                return [row.to_model() for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to query digests: {exc}") from exc
