# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Image Embedding Collaborator
Narrow interface to an external image-embedding service:

    client.embed(url) -> list[float] | None

None means "no vector" (network error, bad payload) and is never an
exception. EmbeddingCache memoises results per URL for one run, failures
included, so each image costs at most one remote call.

Lifecycle of the cache:
  - Created per run by the pipeline orchestrator
  - Filled lazily by visual confirmation
  - Discarded after the run (no cross-run state)
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import requests

from labelpair.config import Settings, get_settings
from labelpair.utils.logger import get_logger

log = get_logger(__name__)


@runtime_checkable
class EmbeddingClient(Protocol):
    def embed(self, url: str) -> Optional[list[float]]:
        """Unit-normalised vector for one image URL, or None on failure."""
        ...


def l2_normalise(vector: Sequence[float]) -> Optional[np.ndarray]:
    """Return a unit vector, or None for empty / zero-norm input."""
    arr = np.asarray(vector, dtype=np.float64).ravel()
    if arr.size == 0:
        return None
    norm = np.linalg.norm(arr)
    if not np.isfinite(norm) or norm < 1e-12:
        return None
    return arr / norm


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two vectors; 0.0 when either is degenerate or shapes differ."""
    ua = l2_normalise(a)
    ub = l2_normalise(b)
    if ua is None or ub is None or ua.shape != ub.shape:
        return 0.0
    return float(np.clip(np.dot(ua, ub), -1.0, 1.0))


class HTTPEmbeddingClient:
    """
    POSTs {"url": image_url} to a feature-extraction endpoint.
    Accepts {"embedding": [...]}, {"data": [{"embedding": [...]}]} or a
    bare list (optionally nested one level) as the response body.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        if not self.settings.embedding_api_url:
            raise ValueError("embedding_api_url is not configured")
        self._session = session or requests.Session()
        if self.settings.embedding_api_token:
            self._session.headers.update(
                {"Authorization": f"Bearer {self.settings.embedding_api_token}"}
            )

    @staticmethod
    def _extract_vector(body: object) -> Optional[list[float]]:
        if isinstance(body, dict):
            if "embedding" in body:
                return HTTPEmbeddingClient._extract_vector(body["embedding"])
            data = body.get("data")
            if isinstance(data, list) and data:
                return HTTPEmbeddingClient._extract_vector(data[0])
            return None
        if isinstance(body, list) and body:
            if isinstance(body[0], list):
                return HTTPEmbeddingClient._extract_vector(body[0])
            if all(isinstance(v, (int, float)) for v in body):
                return [float(v) for v in body]
        return None

    def embed(self, url: str) -> Optional[list[float]]:
        try:
            response = self._session.post(
                self.settings.embedding_api_url,
                json={"url": url},
                timeout=self.settings.embedding_timeout_s,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("embedding_request_failed", url=url, error=repr(exc))
            return None

        vector = self._extract_vector(body)
        unit = l2_normalise(vector) if vector else None
        if unit is None:
            log.warning("embedding_payload_invalid", url=url)
            return None
        return unit.tolist()


class EmbeddingCache:
    """Per-run memo of url → unit vector (None for failures)."""

    def __init__(self, client: EmbeddingClient) -> None:
        self._client = client
        self._vectors: dict[str, Optional[np.ndarray]] = {}
        self.remote_calls = 0

    def __contains__(self, url: str) -> bool:
        return url in self._vectors

    def __len__(self) -> int:
        return len(self._vectors)

    def get(self, url: str) -> Optional[np.ndarray]:
        if url not in self._vectors:
            self.remote_calls += 1
            raw = self._client.embed(url)
            self._vectors[url] = l2_normalise(raw) if raw else None
        return self._vectors[url]

    def similarity(self, url_a: str, url_b: str) -> Optional[float]:
        """Cosine of two cached images; None if either has no vector."""
        a = self.get(url_a)
        b = self.get(url_b)
        if a is None or b is None or a.shape != b.shape:
            return None
        return float(np.clip(np.dot(a, b), -1.0, 1.0))
