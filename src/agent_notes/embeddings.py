"""Embedding providers and text sanitization.

Providers are looked up by name. Each one turns a batch of texts into a batch
of vectors and raises an ``EmbeddingError`` subclass on failure; nothing here
caches, see ``agent_notes.embedding_cache`` for that.
"""

import logging
import os
import re
from collections.abc import Callable
from functools import lru_cache
from typing import TYPE_CHECKING, Protocol

import httpx

from agent_notes.config import EmbeddingConfig
from agent_notes.errors import MissingCredentialError, UnsupportedProviderError, UpstreamEmbeddingError

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENAI_TIMEOUT = 60.0
LOCAL_DEFAULT_MODEL = "all-MiniLM-L6-v2"

# Best-effort only: these catch common key shapes, not every secret.
_REDACTIONS = [
    (re.compile(r"\bsk-[A-Za-z0-9]{20,}\b"), "sk-REDACTED"),
    (re.compile(r"\bntn_[A-Za-z0-9]+\b"), "ntn_REDACTED"),
    (re.compile(r"\bBearer\s+[A-Za-z0-9._-]{20,}\b"), "Bearer REDACTED"),
]


def sanitize_for_embeddings(text: str) -> str:
    """Redact API-key-shaped tokens before text leaves the machine."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class EmbeddingProvider(Protocol):
    name: str

    def embed(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingProvider:
    """OpenAI ``/embeddings`` over HTTP."""

    name = "openai"

    def __init__(
        self,
        model: str,
        dimensions: int | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise MissingCredentialError("OPENAI_API_KEY", self.name)
        self.model = model
        self.dimensions = dimensions
        self._api_key = api_key
        self._base_url = (base_url or os.environ.get("OPENAI_BASE_URL") or OPENAI_BASE_URL).rstrip("/")
        self._transport = transport

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        body: dict[str, object] = {
            "model": self.model,
            "input": texts,
            "encoding_format": "float",
        }
        if self.dimensions:
            body["dimensions"] = self.dimensions

        try:
            with httpx.Client(timeout=OPENAI_TIMEOUT, transport=self._transport) as client:
                response = client.post(
                    f"{self._base_url}/embeddings",
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json=body,
                )
        except httpx.HTTPError as e:
            raise UpstreamEmbeddingError("OpenAI", 0, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise UpstreamEmbeddingError("OpenAI", response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamEmbeddingError("OpenAI", response.status_code, "response is not JSON") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list) or not all(
            isinstance(d, dict) and isinstance(d.get("embedding"), list) for d in data
        ):
            raise UpstreamEmbeddingError("OpenAI", response.status_code, "malformed 'data' in response")
        data = sorted(data, key=lambda d: d.get("index", 0))
        return [[float(v) for v in d["embedding"]] for d in data]


@lru_cache(maxsize=2)
def get_model(model_name: str) -> "SentenceTransformer":
    """Get a sentence transformer model (cached)."""
    from sentence_transformers import SentenceTransformer

    logger.debug("Loading sentence-transformers model %s", model_name)
    return SentenceTransformer(model_name)


class SentenceTransformerProvider:
    """Local embeddings; no credentials and no network once the model is cached."""

    name = "sentence-transformers"

    def __init__(self, model: str, dimensions: int | None = None) -> None:
        self.model = model
        self.dimensions = dimensions

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        model = get_model(self.model)
        embeddings = model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            truncate_dim=self.dimensions,
        )
        return [e.tolist() for e in embeddings]


ProviderFactory = Callable[[EmbeddingConfig], EmbeddingProvider]

PROVIDERS: dict[str, ProviderFactory] = {
    "openai": lambda config: OpenAIEmbeddingProvider(config.model, config.dimensions),
    "sentence-transformers": lambda config: SentenceTransformerProvider(
        config.model, config.dimensions
    ),
}

DEFAULT_MODELS = {
    "openai": "text-embedding-3-small",
    "sentence-transformers": LOCAL_DEFAULT_MODEL,
}


def create_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Build the provider named in ``config``.

    Fails before any network access if the name is unknown or the provider's
    credentials are missing.
    """
    factory = PROVIDERS.get(config.provider)
    if factory is None:
        raise UnsupportedProviderError(config.provider, sorted(PROVIDERS))
    return factory(config)
