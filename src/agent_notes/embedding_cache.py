"""Fetch-or-compute embeddings on top of an ``EmbeddingStore``."""

import logging
from collections.abc import Sequence

import numpy as np

from agent_notes.config import EMBED_BATCH_SIZE, EmbeddingConfig
from agent_notes.embeddings import EmbeddingProvider, sanitize_for_embeddings
from agent_notes.errors import EmbeddingError
from agent_notes.models import Document, fingerprint
from agent_notes.storage import EmbeddingStore

logger = logging.getLogger(__name__)

QUERY_MARKER = "QUERY"


def cache_key(config: EmbeddingConfig, sanitized_text: str, *, query: bool = False) -> str:
    """Fingerprint of (provider, model, dimensions, text).

    Query keys carry an extra marker line so a query never shares an entry
    with a chunk of identical text.
    """
    parts: list[object] = [config.provider, config.model, config.dimensions or ""]
    if query:
        parts.append(QUERY_MARKER)
    parts.append(sanitized_text)
    return fingerprint(*parts)


class EmbeddingCache:
    """Memoizes provider calls per (provider, model, dimensions, text).

    Args:
        store: Backing key/value store.
        provider: Provider used for cache misses.
        config: Embedding space; part of every key.
        reindex: Ignore what is already stored and rebuild it from scratch.
        batch_size: Texts per provider request.
    """

    def __init__(
        self,
        store: EmbeddingStore,
        provider: EmbeddingProvider,
        config: EmbeddingConfig,
        reindex: bool = False,
        batch_size: int = EMBED_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.provider = provider
        self.config = config
        self.batch_size = batch_size
        if reindex:
            store.clear()
        else:
            store.load()

    def get_or_compute(self, items: Sequence[Document]) -> list[np.ndarray]:
        """Return one vector per item, embedding only what is not cached."""
        keys: list[str] = []
        missing: dict[str, str] = {}

        for item in items:
            sanitized = sanitize_for_embeddings(item.text)
            key = cache_key(self.config, sanitized)
            keys.append(key)
            if key not in missing and self.store.get(key) is None:
                missing[key] = sanitized

        if missing:
            logger.info(
                "Embedding %d item(s) via %s (%s)",
                len(missing),
                self.provider.name,
                self.config.model,
            )
            self._embed_missing(list(missing.items()))

        vectors: list[np.ndarray] = []
        for key in keys:
            vector = self.store.get(key)
            if vector is None:
                raise EmbeddingError(f"Embedding for cache key {key[:12]} was not stored")
            vectors.append(vector)
        return vectors

    def embed_query(self, query: str) -> np.ndarray:
        """Embed the query, caching it like any other text."""
        sanitized = sanitize_for_embeddings(query)
        key = cache_key(self.config, sanitized, query=True)
        vector = self.store.get(key)
        if vector is None:
            self._embed_missing([(key, sanitized)])
            vector = self.store.get(key)
            if vector is None:
                raise EmbeddingError("Query embedding was not stored")
        return vector

    def _embed_missing(self, pending: list[tuple[str, str]]) -> None:
        """Embed in sequential batches; completed batches persist even if a later one fails."""
        added = 0
        try:
            for start in range(0, len(pending), self.batch_size):
                batch = pending[start : start + self.batch_size]
                vectors = self.provider.embed([text for _, text in batch])
                if len(vectors) != len(batch):
                    raise EmbeddingError(
                        f"{self.provider.name} returned {len(vectors)} vectors for {len(batch)} inputs"
                    )
                for (key, _), vector in zip(batch, vectors, strict=True):
                    self.store.set(key, self.config.model, self.config.dimensions, vector)
                added += len(batch)
                logger.debug("Embedded batch %d-%d", start, start + len(batch))
        finally:
            if added:
                self.store.flush()
