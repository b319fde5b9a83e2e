"""Locating the repo, its memory files and its agent transcripts."""

import json
import logging
import re
import subprocess
from pathlib import Path

from agent_notes.config import CLAUDE_PROJECTS_DIR, CODEX_DIR, MEMORY_DIR, MEMORY_FILE
from agent_notes.models import TranscriptFile

logger = logging.getLogger(__name__)

_SESSION_UUID = re.compile(r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})$")
_REMOTE_NAME = re.compile(r"/([^/]+?)(?:\.git)?$")


def _git(*args: str, cwd: Path | None = None) -> str | None:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
        )
    except (FileNotFoundError, subprocess.CalledProcessError):
        return None
    return proc.stdout.strip() or None


def get_repo_root(cwd: Path | None = None) -> Path:
    """Top of the enclosing git work tree, or the working directory."""
    root = _git("rev-parse", "--show-toplevel", cwd=cwd)
    return Path(root) if root else (cwd or Path.cwd())


def get_repo_name(repo_root: Path) -> str:
    """Repository name from the origin remote, falling back to the directory name."""
    url = _git("remote", "get-url", "origin", cwd=repo_root)
    if url:
        match = _REMOTE_NAME.search(url)
        if match:
            return match.group(1)
    return repo_root.name


def list_memory_files(repo_root: Path) -> list[str]:
    """Repo-relative memory files: MEMORY.md first, then daily notes oldest to newest."""
    files: list[str] = []
    if (repo_root / MEMORY_FILE).is_file():
        files.append(MEMORY_FILE)

    memory_dir = repo_root / MEMORY_DIR
    if memory_dir.is_dir():
        files.extend(sorted(f"{MEMORY_DIR}/{p.name}" for p in memory_dir.glob("*.md") if p.is_file()))
    return files


def discover_claude_project_dirs(repo_name: str, projects_dir: Path = CLAUDE_PROJECTS_DIR) -> list[Path]:
    """Claude Code project directories whose encoded path mentions the repo.

    Directory names encode the original path, e.g. ``-Users-name-Code-project``.
    """
    if not projects_dir.is_dir():
        return []
    return sorted(p for p in projects_dir.iterdir() if p.is_dir() and repo_name in p.name)


def list_claude_session_files(project_dirs: list[Path]) -> list[TranscriptFile]:
    """Non-empty ``*.jsonl`` transcripts directly inside the project dirs."""
    files: list[TranscriptFile] = []
    for project_dir in project_dirs:
        for path in sorted(project_dir.glob("*.jsonl")):
            try:
                size = path.stat().st_size
            except OSError:
                continue
            if size == 0:
                continue
            files.append(
                TranscriptFile(
                    path=path,
                    session_id=path.stem,
                    size=size,
                    project_dir=project_dir.name,
                    source="claude",
                )
            )
    return files


def load_codex_thread_names(codex_dir: Path = CODEX_DIR) -> dict[str, str]:
    """Map session id to thread name from ``session_index.jsonl``."""
    index_path = codex_dir / "session_index.jsonl"
    names: dict[str, str] = {}
    if not index_path.is_file():
        return names

    with open(index_path, encoding="utf-8", errors="replace") as f:
        for line in f:
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict) and entry.get("id") and entry.get("thread_name"):
                names[str(entry["id"])] = str(entry["thread_name"])
    return names


def codex_session_id(path: Path) -> str:
    """Trailing UUID of ``rollout-<timestamp>-<uuid>.jsonl``, else the stem."""
    match = _SESSION_UUID.search(path.stem)
    return match.group(1) if match else path.stem


def discover_codex_session_files(codex_dir: Path = CODEX_DIR) -> list[TranscriptFile]:
    """All non-empty Codex rollouts, active and archived.

    Repo relevance is only known after reading ``session_meta``, so it is left
    to the parser.
    """
    thread_names = load_codex_thread_names(codex_dir)
    files: list[TranscriptFile] = []

    for subdir in ("sessions", "archived_sessions"):
        root = codex_dir / subdir
        if not root.is_dir():
            continue
        for path in sorted(root.rglob("*.jsonl")):
            try:
                size = path.stat().st_size
            except OSError:
                continue
            if size == 0:
                continue
            session_id = codex_session_id(path)
            files.append(
                TranscriptFile(
                    path=path,
                    session_id=session_id,
                    size=size,
                    project_dir="codex",
                    source="codex",
                    thread_name=thread_names.get(session_id),
                )
            )
    return files
