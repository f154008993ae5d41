"""Embedding-service client.

Sends one batched request per call to an OpenAI-compatible ``/embeddings``
endpoint (OpenRouter by default) and returns vectors in input order.
No retries happen here; a call either returns every vector or raises
:class:`~context_indexing.errors.EmbeddingServiceError`.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from context_indexing.config import settings
from context_indexing.errors import EmbeddingServiceError

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Client for the external embedding service.

    Parameters
    ----------
    api_key:
        Bearer credential.  An empty key fails every call.
    base_url:
        Full URL of the embeddings endpoint.
    model:
        Model identifier sent with every request.
    dimensions:
        Expected length of every returned vector.
    timeout:
        Default request timeout in seconds.
    max_batch_size:
        Largest number of inputs accepted in one call.
    referer / app_title:
        Optional ``HTTP-Referer`` / ``X-Title`` attribution headers.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        timeout: float | None = None,
        max_batch_size: int | None = None,
        referer: str | None = None,
        app_title: str | None = None,
    ) -> None:
        # Unset arguments fall back to the settings current at construction time.
        self.api_key = settings.openrouter_api_key if api_key is None else api_key
        self.base_url = base_url or settings.embedding_base_url
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.timeout = settings.embedding_timeout if timeout is None else timeout
        self.max_batch_size = max_batch_size or settings.embedding_max_batch_size
        self._referer = settings.embedding_referer if referer is None else referer
        self._app_title = settings.embedding_app_title if app_title is None else app_title

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._app_title:
            headers["X-Title"] = self._app_title
        return headers

    def embed(self, texts: list[str], *, timeout: float | None = None) -> list[list[float]]:
        """Embed *texts* and return one vector per input, in input order.

        Parameters
        ----------
        texts:
            Inputs to embed.  An empty list returns ``[]`` without a request.
        timeout:
            Overrides the client's default timeout for this call.

        Raises
        ------
        ValueError
            If *texts* exceeds ``max_batch_size``; split before calling.
        EmbeddingServiceError
            On missing credentials, transport failure, non-2xx status,
            malformed body, or any vector with the wrong dimensionality.
        """
        if not texts:
            return []
        if len(texts) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(texts)} inputs exceeds max_batch_size={self.max_batch_size}"
            )
        if not self.api_key:
            raise EmbeddingServiceError(
                "OPENROUTER_API_KEY is not configured; required for embeddings"
            )

        try:
            resp = requests.post(
                self.base_url,
                headers=self._headers(),
                json={"model": self.model, "input": texts},
                timeout=timeout if timeout is not None else self.timeout,
            )
        except requests.Timeout as exc:
            raise EmbeddingServiceError(f"Embedding request timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc

        if not resp.ok:
            raise EmbeddingServiceError(
                f"Embedding service returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise EmbeddingServiceError("Embedding response is not valid JSON") from exc

        vectors = self._ordered_vectors(body, expected=len(texts))
        logger.debug("Embedded %d inputs with %s", len(vectors), self.model)
        return vectors

    def embed_one(self, text: str, *, timeout: float | None = None) -> list[float]:
        """Embed a single string."""
        return self.embed([text], timeout=timeout)[0]

    def _ordered_vectors(self, body: Any, *, expected: int) -> list[list[float]]:
        """Validate the response body and re-sort its items by ``index``."""
        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise EmbeddingServiceError("Embedding response is missing a 'data' list")
        if len(items) != expected:
            raise EmbeddingServiceError(
                f"Expected {expected} embeddings, got {len(items)}"
            )

        by_index: dict[int, list[float]] = {}
        for item in items:
            if not isinstance(item, dict):
                raise EmbeddingServiceError("Embedding item is not an object")
            index = item.get("index")
            vector = item.get("embedding")
            if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < expected:
                raise EmbeddingServiceError(f"Embedding item has invalid index {index!r}")
            if index in by_index:
                raise EmbeddingServiceError(f"Duplicate embedding index {index}")
            if not isinstance(vector, list):
                raise EmbeddingServiceError(f"Embedding {index} is not a list")
            if len(vector) != self.dimensions:
                raise EmbeddingServiceError(
                    f"Expected {self.dimensions} dimensions, got {len(vector)} at index {index}"
                )
            if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in vector):
                raise EmbeddingServiceError(f"Embedding {index} contains non-numeric values")
            by_index[index] = [float(v) for v in vector]

        return [by_index[i] for i in range(expected)]
