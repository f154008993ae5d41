"""Digest lifecycle writes made on behalf of the extraction stage."""

from __future__ import annotations

import logging
import uuid

from context_indexing.models import Digest, ExtractionStatus, content_hash
from context_indexing.storage.base import DigestStore

logger = logging.getLogger(__name__)


def register_document(
    store: DigestStore,
    document_id: str,
    org_id: str | None = None,
    *,
    digest_id: str | None = None,
) -> Digest:
    """Create the pending stub digest for a newly registered document."""
    digest = Digest(id=digest_id or uuid.uuid4().hex, document_id=document_id, org_id=org_id)
    created = store.create(digest)
    logger.info("Registered document %s with digest %s", document_id, created.id)
    return created


def record_extraction(store: DigestStore, digest_id: str, content_md: str) -> Digest:
    """Store extracted markdown and mark extraction completed."""
    return store.update(
        digest_id,
        content_md=content_md,
        content_hash=content_hash(content_md),
        extraction_status=ExtractionStatus.completed,
        extraction_error=None,
    )


def record_extraction_failure(store: DigestStore, digest_id: str, message: str) -> Digest:
    """Mark extraction failed with *message*."""
    logger.warning("Extraction failed for digest %s: %s", digest_id, message)
    return store.update(
        digest_id,
        extraction_status=ExtractionStatus.failed,
        extraction_error=message or "Unknown extraction error",
    )
