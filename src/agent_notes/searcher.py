"""Search over memory notes and conversation transcripts."""

import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from agent_notes.chunker import chunk_markdown
from agent_notes.config import (
    CHUNK_SNIPPET_CHARS,
    MAX_TRANSCRIPT_BYTES,
    MESSAGE_SNIPPET_CHARS,
    EmbeddingConfig,
    RankingConfig,
)
from agent_notes.discovery import list_memory_files
from agent_notes.embedding_cache import EmbeddingCache
from agent_notes.embeddings import EmbeddingProvider, create_provider
from agent_notes.errors import OversizeFileError
from agent_notes.models import Chunk, ConversationMessage, RankedResult, SearchResult, SessionSummary, T, TranscriptFile
from agent_notes.ranker import displayable, rank_hybrid, rank_keyword
from agent_notes.storage import cache_path, open_store
from agent_notes.transcripts import check_transcript_size, iter_messages, summarize_session

logger = logging.getLogger(__name__)
console = Console()

_WHITESPACE = re.compile(r"\s+")
_HEADING = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)


@dataclass
class SearchOutcome:
    """Results of one search plus what the ranking ran over."""

    query: str
    mode: str  # "keyword" | "semantic"
    results: list[SearchResult] = field(default_factory=list)
    total_items: int = 0
    candidates: int = 0
    search_time_ms: int = 0


def parse_since(since: str | None) -> str | None:
    """Parse a since string into a ``YYYY-MM-DD`` cutoff.

    Supports:
    - Relative: "7d", "2w", "3m", "1y"
    - Absolute: "2024-01-01"
    """
    if since is None:
        return None

    since = since.strip().lower()

    match = re.match(r"^(\d+)([dwmy])$", since)
    if match:
        amount = int(match.group(1))
        days = {"d": 1, "w": 7, "m": 30, "y": 365}[match.group(2)]
        cutoff = datetime.now(tz=timezone.utc) - timedelta(days=amount * days)
        return cutoff.date().isoformat()

    try:
        return date.fromisoformat(since).isoformat()
    except ValueError:
        raise ValueError(f"Invalid date format: {since} (use YYYY-MM-DD or e.g. 7d, 2w)") from None


def make_snippet(text: str, limit: int | None) -> str:
    """Whitespace-collapsed text, cut at ``limit`` characters (None keeps it whole)."""
    if limit is None:
        return text
    return _WHITESPACE.sub(" ", text)[:limit].strip()


def chunk_label(chunk: Chunk) -> str:
    """First markdown heading in the chunk, else its file."""
    match = _HEADING.search(chunk.text)
    return match.group(1).strip() if match else chunk.file_path


def load_memory_chunks(repo_root: Path) -> list[Chunk]:
    """Chunk every memory file, in listing order."""
    chunks: list[Chunk] = []
    for rel in list_memory_files(repo_root):
        path = repo_root / rel
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Skipping %s: %s", rel, e)
            continue
        chunks.extend(chunk_markdown(rel, content))
    return chunks


def _rank(
    query: str,
    items: Sequence[T],
    limit: int,
    semantic: bool,
    cache: EmbeddingCache | None,
    ranking_config: RankingConfig,
) -> tuple[list[RankedResult[T]], int]:
    if not semantic or cache is None:
        ranked = rank_keyword(query, items, ranking_config)
        return displayable(ranked, limit), len(items)

    vectors = cache.get_or_compute(items)
    query_vector = cache.embed_query(query)
    ranked = rank_hybrid(query, items, vectors, query_vector, ranking_config)
    return displayable(ranked, limit), len(ranked)


def _open_cache(
    repo_root: Path,
    corpus: str,
    embedding_config: EmbeddingConfig,
    provider: EmbeddingProvider,
    reindex: bool,
    cache_backend: str,
) -> EmbeddingCache:
    store = open_store(cache_path(repo_root, corpus, embedding_config, cache_backend), cache_backend)
    logger.debug("Embedding cache: %s", store.path)
    return EmbeddingCache(store, provider, embedding_config, reindex=reindex)


def _search(
    corpus: str,
    query: str,
    load_items: Callable[[], Sequence[T]],
    to_result: Callable[[RankedResult[T]], SearchResult],
    repo_root: Path,
    limit: int,
    semantic: bool,
    reindex: bool,
    embedding_config: EmbeddingConfig | None,
    ranking_config: RankingConfig | None,
    cache_backend: str,
    provider: EmbeddingProvider | None,
) -> SearchOutcome:
    start_time = time.time()
    embedding_config = embedding_config or EmbeddingConfig()
    ranking_config = ranking_config or RankingConfig()
    outcome = SearchOutcome(query=query, mode="semantic" if semantic else "keyword")

    # Semantic preconditions fail before any work is done
    if semantic and provider is None:
        provider = create_provider(embedding_config)

    items = load_items()
    outcome.total_items = len(items)
    if not items:
        return outcome

    cache = None
    if semantic:
        logger.info("Note: content is sent to the embeddings provider (best-effort secret redaction is applied)")
        cache = _open_cache(repo_root, corpus, embedding_config, provider, reindex, cache_backend)

    try:
        ranked, outcome.candidates = _rank(query, items, limit, semantic, cache, ranking_config)
    finally:
        if cache is not None:
            cache.store.close()

    outcome.results = [to_result(r) for r in ranked]
    outcome.search_time_ms = int((time.time() - start_time) * 1000)
    return outcome


def search_memory(
    repo_root: Path,
    query: str,
    limit: int = 10,
    semantic: bool = False,
    reindex: bool = False,
    embedding_config: EmbeddingConfig | None = None,
    ranking_config: RankingConfig | None = None,
    cache_backend: str = "json",
    provider: EmbeddingProvider | None = None,
) -> SearchOutcome:
    """Rank memory chunks of ``repo_root`` against ``query``."""

    def to_result(r: RankedResult[Chunk]) -> SearchResult:
        return SearchResult(
            score=r.score,
            location=f"{r.item.file_path} chunk {r.item.idx}",
            snippet=make_snippet(r.item.text, CHUNK_SNIPPET_CHARS),
            label=chunk_label(r.item),
            bm25=r.bm25,
            cosine=r.cosine,
        )

    return _search(
        "memory",
        query,
        lambda: load_memory_chunks(repo_root),
        to_result,
        repo_root,
        limit,
        semantic,
        reindex,
        embedding_config,
        ranking_config,
        cache_backend,
        provider,
    )


def filter_session_files(
    files: list[TranscriptFile], source: str = "all", session: str | None = None
) -> list[TranscriptFile]:
    """Keep files from ``source`` whose session id starts with ``session``."""
    if source != "all":
        files = [f for f in files if f.source == source]
    if session:
        files = [f for f in files if f.session_id.startswith(session)]
    return files


def search_conversations(
    transcripts: list[TranscriptFile],
    query: str,
    repo_name: str,
    repo_root: Path,
    since_date: str | None = None,
    limit: int = 10,
    verbose: bool = False,
    semantic: bool = False,
    reindex: bool = False,
    embedding_config: EmbeddingConfig | None = None,
    ranking_config: RankingConfig | None = None,
    cache_backend: str = "json",
    provider: EmbeddingProvider | None = None,
    max_bytes: int = MAX_TRANSCRIPT_BYTES,
) -> SearchOutcome:
    """Rank every message of the given transcripts against ``query``."""

    def load_items() -> list[ConversationMessage]:
        messages = list(iter_messages(transcripts, repo_name, since_date, max_bytes))
        logger.info("%d messages indexed, ranking...", len(messages))
        return messages

    def to_result(r: RankedResult[ConversationMessage]) -> SearchResult:
        msg = r.item
        return SearchResult(
            score=r.score,
            location=(
                f"{msg.session_date or '?'} [{msg.role}] {msg.source} "
                f"session={msg.session_id[:8]} ({msg.project_dir})"
            ),
            snippet=make_snippet(msg.text, None if verbose else MESSAGE_SNIPPET_CHARS),
            label=msg.label,
            bm25=r.bm25,
            cosine=r.cosine,
        )

    return _search(
        "conversations",
        query,
        load_items,
        to_result,
        repo_root,
        limit,
        semantic,
        reindex,
        embedding_config,
        ranking_config,
        cache_backend,
        provider,
    )


def list_sessions(
    transcripts: list[TranscriptFile],
    repo_name: str,
    since_date: str | None = None,
    max_bytes: int = MAX_TRANSCRIPT_BYTES,
) -> list[SessionSummary]:
    """Summaries of relevant sessions, newest first."""
    sessions: list[SessionSummary] = []
    for transcript in transcripts:
        try:
            check_transcript_size(transcript.path, max_bytes)
            summary = summarize_session(transcript, repo_name)
        except OversizeFileError as e:
            logger.warning("Skipping %s transcript %s", transcript.source, e)
            continue
        except OSError as e:
            logger.warning("Error reading %s: %s", transcript.session_id, e)
            continue
        if summary is None:
            continue
        if since_date and summary.date < since_date:
            continue
        sessions.append(summary)
    return sorted(sessions, key=lambda s: s.date, reverse=True)


def highlight_matches(text: str, query: str) -> Text:
    """Highlight query terms in text."""
    rendered = Text(text)
    for term in query.lower().split():
        # Skip very short terms to avoid too many highlights
        if len(term) < 3:
            continue
        rendered.highlight_regex(re.compile(re.escape(term), re.IGNORECASE), style="bold yellow")
    return rendered


def format_human_output(outcome: SearchOutcome) -> None:
    """Format results for human-readable output."""
    if not outcome.results:
        console.print("[yellow]No results found. Try a different query.[/yellow]")
        return

    for i, result in enumerate(outcome.results, 1):
        header = Text()
        header.append(f"[{i}] ", style="bold cyan")
        header.append(f"score={result.score:.3f}", style="green")
        if result.cosine is not None:
            header.append(f" bm25={result.bm25:.3f} cos={result.cosine:.3f}", style="dim")
        header.append(f" | {result.location}", style="dim")

        panel = Panel(
            highlight_matches(result.snippet, outcome.query),
            title=header,
            title_align="left",
            subtitle=f"label: {result.label}",
            subtitle_align="left",
        )
        console.print(panel)

    console.print("─" * 50)
    summary = f"{outcome.mode} search: {len(outcome.results)} results from {outcome.total_items} items"
    if outcome.mode == "semantic":
        summary += f" ({outcome.candidates} candidates)"
    console.print(f"{summary} in {outcome.search_time_ms}ms")


def format_json_output(outcome: SearchOutcome) -> None:
    """Format results as JSON for programmatic use."""
    output = {
        "results": [
            {
                "rank": i + 1,
                "score": round(result.score, 4),
                "bm25": round(result.bm25, 4),
                "cosine": None if result.cosine is None else round(result.cosine, 4),
                "location": result.location,
                "label": result.label,
                "snippet": result.snippet,
            }
            for i, result in enumerate(outcome.results)
        ],
        "query": outcome.query,
        "mode": outcome.mode,
        "total_items": outcome.total_items,
        "total_results": len(outcome.results),
        "search_time_ms": outcome.search_time_ms,
    }
    console.print_json(data=output)


def format_sessions_output(sessions: list[SessionSummary]) -> None:
    """Print one line per session."""
    console.print(f"\nSessions: {len(sessions)}\n")
    for s in sessions:
        size_mb = f"{s.size / 1024 / 1024:.1f}"
        name = f" [{s.thread_name}]" if s.thread_name else ""
        line = Text(f"  {s.date}  {size_mb:>6} MB  {s.source:<6}  {s.session_id[:8]}{name}  ")
        line.append(s.first_message, style="cyan")
        console.print(line)
