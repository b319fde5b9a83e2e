"""Defaults and settings shared by the search commands."""

import re
from dataclasses import dataclass
from pathlib import Path

# Chunking
MAX_CHUNK_CHARS = 1200
MIN_CHUNK_CHARS = 200

# BM25
BM25_K1 = 1.2
BM25_B = 0.75

# Fusion
KEYWORD_WEIGHT = 0.45
SEMANTIC_WEIGHT = 0.55
CANDIDATE_WINDOW = 80

# Embeddings
DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "text-embedding-3-small"
EMBED_BATCH_SIZE = 96

# Transcripts
MAX_TRANSCRIPT_BYTES = 500 * 1024 * 1024
LABEL_CHARS = 120
MESSAGE_SNIPPET_CHARS = 300
CHUNK_SNIPPET_CHARS = 220

# Locations
MEMORY_FILE = "MEMORY.md"
MEMORY_DIR = "memory"
CACHE_DIR = Path(".cache")
CLAUDE_PROJECTS_DIR = Path.home() / ".claude" / "projects"
CODEX_DIR = Path.home() / ".codex"

# Env
ENV_PROVIDER = "MEMORY_EMBEDDINGS_PROVIDER"
ENV_MODEL = "MEMORY_EMBEDDINGS_MODEL"
ENV_DIMENSIONS = "MEMORY_EMBEDDING_DIMENSIONS"


@dataclass(frozen=True)
class EmbeddingConfig:
    """Which embedding space vectors live in.

    Cache keys and cache file names are derived from all three fields, so
    vectors of different dimensions never meet.
    """

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    dimensions: int | None = None

    def cache_filename(self, suffix: str = ".json") -> str:
        model = re.sub(r"[^A-Za-z0-9_.-]+", "_", self.model)
        dims = self.dimensions if self.dimensions else "default"
        return f"embeddings.{self.provider}.{model}.{dims}{suffix}"


@dataclass(frozen=True)
class RankingConfig:
    k1: float = BM25_K1
    b: float = BM25_B
    keyword_weight: float = KEYWORD_WEIGHT
    semantic_weight: float = SEMANTIC_WEIGHT
    candidate_window: int = CANDIDATE_WINDOW
