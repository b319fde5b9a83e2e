"""Data models for agent-notes."""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Protocol, TypeVar


def fingerprint(*parts: object) -> str:
    """SHA-256 hex digest of the newline-joined parts."""
    joined = "\n".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


class Document(Protocol):
    """Anything the ranker can score: a stable id plus text."""

    @property
    def id(self) -> str: ...

    @property
    def text(self) -> str: ...


@dataclass(frozen=True)
class Chunk:
    """A paragraph-aligned slice of a memory file."""

    id: str
    file_path: str
    idx: int
    text: str


@dataclass(frozen=True)
class TranscriptFile:
    """A discovered JSONL transcript."""

    path: Path
    session_id: str
    size: int
    project_dir: str
    source: str  # "claude" | "codex"
    thread_name: str | None = None


@dataclass(frozen=True)
class ConversationMessage:
    """A single user or assistant turn extracted from a transcript."""

    role: str  # "user" | "assistant"
    text: str
    timestamp: str | None
    session_id: str
    session_date: str | None
    first_user_message: str | None
    source: str  # "claude" | "codex"
    project_dir: str = ""
    thread_name: str | None = None

    @property
    def id(self) -> str:
        return fingerprint(self.session_id, self.timestamp, self.text[:500])

    @property
    def label(self) -> str:
        return self.thread_name or self.first_user_message or "(no label)"


@dataclass(frozen=True)
class SessionSummary:
    """One row of the session listing."""

    session_id: str
    date: str
    first_message: str
    size: int
    project_dir: str
    source: str
    thread_name: str | None = None


T = TypeVar("T", bound=Document)


@dataclass
class RankedResult(Generic[T]):
    """An item with its lexical and (optionally) semantic scores."""

    item: T
    bm25: float
    cosine: float | None = None
    combined: float | None = None

    @property
    def score(self) -> float:
        """The active score: combined in semantic mode, BM25 otherwise."""
        return self.combined if self.combined is not None else self.bm25


@dataclass
class SearchResult:
    """A ranked hit ready for display."""

    score: float
    location: str
    snippet: str
    label: str
    bm25: float
    cosine: float | None = None
