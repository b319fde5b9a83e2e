"""Streaming extraction of messages from Claude Code and Codex JSONL transcripts.

Each line is decoded into one of a few record types; anything malformed or
irrelevant becomes ``Skip``. Session parsers are generators that read one line
at a time and stop early when a session falls before the ``since`` cutoff.
"""

import json
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_notes.config import LABEL_CHARS, MAX_TRANSCRIPT_BYTES
from agent_notes.errors import OversizeFileError
from agent_notes.models import ConversationMessage, SessionSummary, TranscriptFile

logger = logging.getLogger(__name__)

CHAT_ROLES = ("user", "assistant")
CODEX_TEXT_BLOCKS = ("input_text", "output_text", "text")
# Injected context rather than conversation
NOISE_PREFIXES = ("<", "# AGENTS.md")

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Skip:
    reason: str


@dataclass(frozen=True)
class ClaudeLine:
    role: str
    text: str
    timestamp: str | None


@dataclass(frozen=True)
class CodexSessionMeta:
    cwd: str
    timestamp: str | None


@dataclass(frozen=True)
class CodexResponseItem:
    role: str
    text: str
    timestamp: str | None


ClaudeRecord = ClaudeLine | Skip
CodexRecord = CodexSessionMeta | CodexResponseItem | Skip


def make_label(text: str) -> str:
    """First ``LABEL_CHARS`` characters with whitespace collapsed."""
    return _WHITESPACE.sub(" ", text[:LABEL_CHARS]).strip()


def _load_object(line: str) -> dict[str, Any] | Skip:
    if not line.strip():
        return Skip("blank")
    try:
        record = json.loads(line)
    except (ValueError, RecursionError):
        return Skip("malformed")
    if not isinstance(record, dict):
        return Skip("not an object")
    return record


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def extract_claude_text(message: Any) -> str:
    """Text of a Claude message: a raw string or the joined ``text`` blocks."""
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = [
        block["text"]
        for block in content
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    return "\n".join(parts)


def extract_codex_text(payload: Any) -> str:
    """Text of a Codex response item from its typed content blocks."""
    if not isinstance(payload, dict):
        return ""
    content = payload.get("content")
    if not isinstance(content, list):
        return ""
    parts = [
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") in CODEX_TEXT_BLOCKS
        and isinstance(block.get("text"), str)
    ]
    return "\n".join(parts)


def decode_claude_line(line: str) -> ClaudeRecord:
    record = _load_object(line)
    if isinstance(record, Skip):
        return record
    record_type = record.get("type")
    if record_type not in CHAT_ROLES:
        return Skip(f"type={record_type}")
    return ClaudeLine(
        role=record_type,
        text=extract_claude_text(record.get("message")),
        timestamp=_as_str(record.get("timestamp")),
    )


def decode_codex_line(line: str) -> CodexRecord:
    record = _load_object(line)
    if isinstance(record, Skip):
        return record

    record_type = record.get("type")
    payload = record.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    if record_type == "session_meta":
        cwd = payload.get("cwd")
        return CodexSessionMeta(
            cwd=cwd if isinstance(cwd, str) else "",
            timestamp=_as_str(payload.get("timestamp")) or _as_str(record.get("timestamp")),
        )

    if record_type == "response_item":
        role = payload.get("role")
        # developer/system turns are not conversation
        if role not in CHAT_ROLES:
            return Skip(f"role={role}")
        return CodexResponseItem(
            role=role,
            text=extract_codex_text(payload),
            timestamp=_as_str(record.get("timestamp")),
        )

    return Skip(f"type={record_type}")


def is_noise(text: str) -> bool:
    return text.startswith(NOISE_PREFIXES)


def check_transcript_size(path: Path, limit: int = MAX_TRANSCRIPT_BYTES) -> int:
    """Return the file size, raising ``OversizeFileError`` above ``limit``."""
    size = path.stat().st_size
    if size > limit:
        raise OversizeFileError(path, size, limit)
    return size


def _read_lines(path: Path) -> Iterator[str]:
    with open(path, encoding="utf-8", errors="replace") as f:
        yield from f


def parse_claude_session(
    transcript: TranscriptFile, since_date: str | None = None
) -> Iterator[ConversationMessage]:
    """Yield user/assistant messages from a Claude Code transcript."""
    first_user_message: str | None = None
    session_date: str | None = None

    for line in _read_lines(transcript.path):
        record = decode_claude_line(line)
        if isinstance(record, Skip):
            continue

        if record.timestamp and session_date is None:
            session_date = record.timestamp[:10]
            if since_date and session_date < since_date:
                return

        if not record.text.strip():
            continue

        if record.role == "user" and first_user_message is None:
            first_user_message = make_label(record.text)

        yield ConversationMessage(
            role=record.role,
            text=record.text,
            timestamp=record.timestamp,
            session_id=transcript.session_id,
            session_date=session_date,
            first_user_message=first_user_message,
            source="claude",
            project_dir=transcript.project_dir,
            thread_name=transcript.thread_name,
        )


def parse_codex_session(
    transcript: TranscriptFile, repo_name: str, since_date: str | None = None
) -> Iterator[ConversationMessage]:
    """Yield user/assistant messages from a Codex rollout.

    Nothing is yielded until a ``session_meta`` line shows the session ran in
    a directory containing ``repo_name``.
    """
    first_user_message: str | None = None
    session_date: str | None = None
    relevant = False

    for line in _read_lines(transcript.path):
        record = decode_codex_line(line)
        if isinstance(record, Skip):
            continue

        if isinstance(record, CodexSessionMeta):
            if repo_name in record.cwd:
                relevant = True
            if record.timestamp and session_date is None:
                session_date = record.timestamp[:10]
                if since_date and session_date < since_date:
                    return
            continue

        if not relevant:
            continue

        if record.timestamp and session_date is None:
            session_date = record.timestamp[:10]

        if not record.text.strip() or is_noise(record.text):
            continue

        if record.role == "user" and first_user_message is None:
            first_user_message = make_label(record.text)

        yield ConversationMessage(
            role=record.role,
            text=record.text,
            timestamp=record.timestamp,
            session_id=transcript.session_id,
            session_date=session_date,
            first_user_message=first_user_message,
            source="codex",
            project_dir=transcript.project_dir,
            thread_name=transcript.thread_name,
        )


def parse_session(
    transcript: TranscriptFile, repo_name: str, since_date: str | None = None
) -> Iterator[ConversationMessage]:
    if transcript.source == "codex":
        return parse_codex_session(transcript, repo_name, since_date)
    return parse_claude_session(transcript, since_date)


def iter_messages(
    transcripts: Iterable[TranscriptFile],
    repo_name: str,
    since_date: str | None = None,
    max_bytes: int = MAX_TRANSCRIPT_BYTES,
) -> Iterator[ConversationMessage]:
    """Messages from every transcript; oversize or unreadable files are skipped."""
    for transcript in transcripts:
        try:
            check_transcript_size(transcript.path, max_bytes)
            yield from parse_session(transcript, repo_name, since_date)
        except OversizeFileError as e:
            logger.warning("Skipping %s transcript %s", transcript.source, e)
        except OSError as e:
            logger.warning("Error reading %s: %s", transcript.session_id, e)


def summarize_session(transcript: TranscriptFile, repo_name: str) -> SessionSummary | None:
    """Date and label of a session, reading only as far as needed.

    Returns None for Codex sessions from other repos and for sessions with no
    user or assistant messages.
    """
    is_codex = transcript.source == "codex"
    first_message = transcript.thread_name
    session_date: str | None = None
    message_count = 0
    relevant = not is_codex

    for line in _read_lines(transcript.path):
        record = decode_codex_line(line) if is_codex else decode_claude_line(line)
        if isinstance(record, Skip):
            continue

        if isinstance(record, CodexSessionMeta):
            if repo_name in record.cwd:
                relevant = True
            if record.timestamp and session_date is None:
                session_date = record.timestamp[:10]
            continue

        if not relevant:
            continue

        message_count += 1
        if record.timestamp and session_date is None:
            session_date = record.timestamp[:10]
        if record.role == "user" and first_message is None:
            if record.text.strip() and not (is_codex and is_noise(record.text)):
                first_message = make_label(record.text)

        if session_date and first_message:
            break

    if not relevant or message_count == 0:
        return None

    return SessionSummary(
        session_id=transcript.session_id,
        date=session_date or "unknown",
        first_message=first_message or "(empty)",
        size=transcript.size,
        project_dir=transcript.project_dir,
        source=transcript.source,
        thread_name=transcript.thread_name,
    )
