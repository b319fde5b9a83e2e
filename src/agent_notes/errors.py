"""Exceptions raised by agent-notes."""

from pathlib import Path


class AgentNotesError(Exception):
    """Base class for all agent-notes errors."""


class EmbeddingError(AgentNotesError):
    """Semantic search could not produce embeddings."""


class UnsupportedProviderError(EmbeddingError):
    def __init__(self, provider: str, supported: list[str]) -> None:
        self.provider = provider
        self.supported = supported
        super().__init__(
            f"Unsupported embeddings provider: {provider} "
            f"(supported: {', '.join(supported)})"
        )


class MissingCredentialError(EmbeddingError):
    def __init__(self, variable: str, provider: str) -> None:
        self.variable = variable
        self.provider = provider
        super().__init__(f"{variable} is required for --semantic (provider={provider}).")


class UpstreamEmbeddingError(EmbeddingError):
    """Non-success HTTP response from the embeddings provider."""

    def __init__(self, provider: str, status_code: int, body: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body[:300]
        super().__init__(f"{provider} embeddings error: HTTP {status_code} {self.body}")


class OversizeFileError(AgentNotesError):
    """A transcript is too large to stream."""

    def __init__(self, path: Path, size: int, limit: int) -> None:
        self.path = path
        self.size = size
        self.limit = limit
        super().__init__(
            f"{path.name} ({size / 1024 / 1024:.0f} MB > {limit // (1024 * 1024)} MB limit)"
        )
