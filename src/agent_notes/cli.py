"""CLI for agent-notes."""

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from agent_notes import __version__
from agent_notes.config import (
    CLAUDE_PROJECTS_DIR,
    CODEX_DIR,
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    ENV_DIMENSIONS,
    ENV_MODEL,
    ENV_PROVIDER,
    EmbeddingConfig,
)
from agent_notes.errors import AgentNotesError
from agent_notes.models import TranscriptFile

app = typer.Typer(
    name="agent-notes",
    help="Search repo memory notes and local agent transcripts (Claude Code + Codex).",
    no_args_is_help=True,
)
memory_app = typer.Typer(help="Repo memory utilities (MEMORY.md + memory/*.md).", no_args_is_help=True)
conversations_app = typer.Typer(help="Search local agent transcripts.", no_args_is_help=True)
app.add_typer(memory_app, name="memory")
app.add_typer(conversations_app, name="conversations")

console = Console()
err_console = Console(stderr=True)

ProviderOption = Annotated[
    str,
    typer.Option("--provider", envvar=ENV_PROVIDER, help="Embeddings provider (openai, sentence-transformers)"),
]
ModelOption = Annotated[
    str | None, typer.Option("--model", envvar=ENV_MODEL, help="Embeddings model")
]
DimensionsOption = Annotated[
    int | None, typer.Option("--dimensions", envvar=ENV_DIMENSIONS, help="Embeddings dimensions")
]
SemanticOption = Annotated[
    bool, typer.Option("--semantic", help="Combine keyword BM25 + semantic embeddings")
]
ReindexOption = Annotated[
    bool, typer.Option("--reindex", help="Ignore the embedding cache and rebuild it")
]
CacheBackendOption = Annotated[
    str, typer.Option("--cache-backend", help="Embedding cache backend (json, sqlite)")
]
LimitOption = Annotated[int, typer.Option("--k", "-k", "--limit", "-n", help="Number of results")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]
RepoRootOption = Annotated[
    Path | None, typer.Option("--repo-root", help="Repository root (default: git toplevel)")
]


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    if value:
        console.print(f"agent-notes {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Verbose logging")] = False,
) -> None:
    """Search repo memory and agent conversations."""
    setup_logging(debug)


def embedding_config(provider: str, model: str | None, dimensions: int | None) -> EmbeddingConfig:
    from agent_notes.embeddings import DEFAULT_MODELS

    return EmbeddingConfig(
        provider=provider,
        model=model or DEFAULT_MODELS.get(provider, DEFAULT_MODEL),
        dimensions=dimensions or None,
    )


def resolve_repo_root(repo_root: Path | None) -> Path:
    from agent_notes.discovery import get_repo_root

    return repo_root.resolve() if repo_root else get_repo_root()


def fail(command: str, err: Exception) -> NoReturn:
    err_console.print(f"[red]{command} failed: {err}[/red]")
    raise typer.Exit(1)


def parse_since_option(since: str | None) -> str | None:
    from agent_notes.searcher import parse_since

    try:
        return parse_since(since)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--since") from None


@memory_app.command("search")
def memory_search(
    query: Annotated[str, typer.Argument(help="Search query")],
    limit: LimitOption = 10,
    semantic: SemanticOption = False,
    reindex: ReindexOption = False,
    provider: ProviderOption = DEFAULT_PROVIDER,
    model: ModelOption = None,
    dimensions: DimensionsOption = None,
    cache_backend: CacheBackendOption = "json",
    json_output: JsonOption = False,
    repo_root: RepoRootOption = None,
) -> None:
    """Search MEMORY.md and memory/*.md."""
    if not query.strip():
        err_console.print("[red]Error: Query required[/red]")
        raise typer.Exit(1)

    from agent_notes.searcher import format_human_output, format_json_output, search_memory

    root = resolve_repo_root(repo_root)
    try:
        outcome = search_memory(
            root,
            query,
            limit=limit,
            semantic=semantic,
            reindex=reindex,
            embedding_config=embedding_config(provider, model, dimensions),
            cache_backend=cache_backend,
        )
    except (AgentNotesError, ValueError) as e:
        fail("memory:search", e)

    if outcome.total_items == 0:
        console.print("memory:search: no memory chunks found")
        return

    if json_output:
        format_json_output(outcome)
    else:
        format_human_output(outcome)


def _transcripts(
    repo_name: str, source: str, session: str | None, claude_dir: Path, codex_dir: Path
) -> list[TranscriptFile]:
    from agent_notes.discovery import (
        discover_claude_project_dirs,
        discover_codex_session_files,
        list_claude_session_files,
    )
    from agent_notes.searcher import filter_session_files

    if source not in ("all", "claude", "codex"):
        raise typer.BadParameter("must be one of: all, claude, codex", param_hint="--source")

    logger = logging.getLogger("agent_notes.cli")
    files: list[TranscriptFile] = []
    if source in ("all", "claude"):
        project_dirs = discover_claude_project_dirs(repo_name, claude_dir)
        claude_files = list_claude_session_files(project_dirs)
        files.extend(claude_files)
        logger.info("claude: %d project dir(s), %d session(s)", len(project_dirs), len(claude_files))
    if source in ("all", "codex"):
        codex_files = discover_codex_session_files(codex_dir)
        files.extend(codex_files)
        logger.info("codex: %d session file(s) (filtering by repo at parse time)", len(codex_files))

    if not files:
        err_console.print(f'[red]conversations: no session files found for "{repo_name}"[/red]')
        raise typer.Exit(1)

    files = filter_session_files(files, source="all", session=session)
    if not files:
        err_console.print(f'[red]conversations: session "{session}" not found[/red]')
        raise typer.Exit(1)
    return files


SinceOption = Annotated[
    str | None, typer.Option("--since", "-s", help="Only sessions on/after date (YYYY-MM-DD, 7d, 2w)")
]
SourceOption = Annotated[str, typer.Option("--source", help="claude, codex, or all")]
SessionOption = Annotated[str | None, typer.Option("--session", help="Session id (or prefix)")]
RepoNameOption = Annotated[
    str | None, typer.Option("--repo-name", help="Repo name to match (default: origin remote)")
]
ClaudeDirOption = Annotated[Path, typer.Option("--claude-dir", hidden=True)]
CodexDirOption = Annotated[Path, typer.Option("--codex-dir", hidden=True)]


@conversations_app.command("search")
def conversations_search(
    query: Annotated[str, typer.Argument(help="Search query")],
    limit: LimitOption = 10,
    since: SinceOption = None,
    session: SessionOption = None,
    source: SourceOption = "all",
    verbose: Annotated[bool, typer.Option("--verbose", help="Show full message text")] = False,
    semantic: SemanticOption = False,
    reindex: ReindexOption = False,
    provider: ProviderOption = DEFAULT_PROVIDER,
    model: ModelOption = None,
    dimensions: DimensionsOption = None,
    cache_backend: CacheBackendOption = "json",
    json_output: JsonOption = False,
    repo_root: RepoRootOption = None,
    repo_name: RepoNameOption = None,
    claude_dir: ClaudeDirOption = CLAUDE_PROJECTS_DIR,
    codex_dir: CodexDirOption = CODEX_DIR,
) -> None:
    """Search Claude Code and Codex transcripts for this repo."""
    if not query.strip():
        err_console.print("[red]Error: Query required[/red]")
        raise typer.Exit(1)

    from agent_notes.discovery import get_repo_name
    from agent_notes.searcher import format_human_output, format_json_output, search_conversations

    since_date = parse_since_option(since)
    root = resolve_repo_root(repo_root)
    name = repo_name or get_repo_name(root)
    files = _transcripts(name, source, session, claude_dir, codex_dir)

    try:
        outcome = search_conversations(
            files,
            query,
            repo_name=name,
            repo_root=root,
            since_date=since_date,
            limit=limit,
            verbose=verbose,
            semantic=semantic,
            reindex=reindex,
            embedding_config=embedding_config(provider, model, dimensions),
            cache_backend=cache_backend,
        )
    except (AgentNotesError, ValueError) as e:
        fail("conversations:search", e)

    if outcome.total_items == 0:
        console.print("conversations:search: no messages found")
        return

    if json_output:
        format_json_output(outcome)
    else:
        format_human_output(outcome)


@conversations_app.command("sessions")
def conversations_sessions(
    since: SinceOption = None,
    session: SessionOption = None,
    source: SourceOption = "all",
    repo_root: RepoRootOption = None,
    repo_name: RepoNameOption = None,
    claude_dir: ClaudeDirOption = CLAUDE_PROJECTS_DIR,
    codex_dir: CodexDirOption = CODEX_DIR,
) -> None:
    """List sessions for this repo, newest first."""
    from agent_notes.discovery import get_repo_name
    from agent_notes.searcher import format_sessions_output, list_sessions

    since_date = parse_since_option(since)
    root = resolve_repo_root(repo_root)
    name = repo_name or get_repo_name(root)
    files = _transcripts(name, source, session, claude_dir, codex_dir)

    format_sessions_output(list_sessions(files, name, since_date))


if __name__ == "__main__":
    app()
