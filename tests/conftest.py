"""Pytest fixtures for agent-notes tests."""

import json
import tempfile
from pathlib import Path

import pytest

from agent_notes.models import TranscriptFile


def write_jsonl(path: Path, records: list) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for record in records:
            f.write((record if isinstance(record, str) else json.dumps(record)) + "\n")
    return path


class FakeProvider:
    """Deterministic in-process embeddings that count calls."""

    name = "fake"

    def __init__(self, vocabulary: tuple[str, ...] = ("auth", "jwt", "cache", "queue")) -> None:
        self.vocabulary = vocabulary
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [
            [float(text.lower().count(word)) for word in self.vocabulary] + [1.0]
            for text in texts
        ]

    @property
    def embedded_texts(self) -> list[str]:
        return [t for call in self.calls for t in call]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def memory_repo(temp_dir):
    """A repo with MEMORY.md and two daily notes."""
    (temp_dir / "MEMORY.md").write_text(
        "# Durable memory\n\n"
        "Auth uses JWT tokens signed with a rotating key.\n\n"
        "```bash\nexport SECRET=abc\n```\n\n"
        "The inbound queue retries failed jobs three times.\n"
    )
    memory_dir = temp_dir / "memory"
    memory_dir.mkdir()
    (memory_dir / "2024-01-16.md").write_text(
        "## Wrap-Up\n\nMoved the embedding cache to the repo .cache directory.\n"
    )
    (memory_dir / "2024-01-15.md").write_text(
        "## Wrap-Up\n\nFixed flaky billing tests by freezing time.\n"
    )
    return temp_dir


@pytest.fixture
def sample_session_jsonl(temp_dir):
    """Create a sample Claude Code JSONL session file."""
    session_file = temp_dir / "claude" / "-Users-me-Code-widgets" / "test-session-123.jsonl"

    records = [
        {"type": "summary", "summary": "Auth discussion"},
        {
            "type": "user",
            "uuid": "msg-001",
            "sessionId": "test-session-123",
            "timestamp": "2024-01-15T10:00:00Z",
            "message": {"role": "user", "content": "How do I implement   authentication?"},
        },
        "{not valid json",
        {
            "type": "assistant",
            "uuid": "msg-002",
            "sessionId": "test-session-123",
            "timestamp": "2024-01-15T10:00:05Z",
            "message": {
                "role": "assistant",
                "content": [
                    {"type": "thinking", "thinking": "Let me think about a good example..."},
                    {"type": "text", "text": "For authentication, you can use JWT tokens."},
                    {"type": "text", "text": "Sign them with a rotating key."},
                ],
            },
        },
        {
            "type": "assistant",
            "uuid": "msg-003",
            "timestamp": "2024-01-15T10:00:09Z",
            "message": {
                "role": "assistant",
                "content": [{"type": "tool_use", "name": "Bash", "input": {"command": "ls"}}],
            },
        },
        {
            "type": "user",
            "uuid": "msg-004",
            "sessionId": "test-session-123",
            "timestamp": "2024-01-15T10:01:00Z",
            "message": {"role": "user", "content": "Can you show me an example?"},
        },
    ]
    return write_jsonl(session_file, records)


@pytest.fixture
def claude_transcript(sample_session_jsonl):
    return TranscriptFile(
        path=sample_session_jsonl,
        session_id="test-session-123",
        size=sample_session_jsonl.stat().st_size,
        project_dir=sample_session_jsonl.parent.name,
        source="claude",
    )


def codex_records(cwd: str = "/Users/me/Code/widgets", timestamp: str = "2024-02-01T09:00:00Z"):
    return [
        {
            "type": "session_meta",
            "timestamp": timestamp,
            "payload": {"id": "0199aaaa-bbbb-cccc-dddd-eeeeffff0000", "cwd": cwd, "timestamp": timestamp},
        },
        {
            "type": "response_item",
            "timestamp": "2024-02-01T09:00:01Z",
            "payload": {
                "type": "message",
                "role": "developer",
                "content": [{"type": "input_text", "text": "You are Codex."}],
            },
        },
        {
            "type": "response_item",
            "timestamp": "2024-02-01T09:00:02Z",
            "payload": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": "<environment_context>cwd</environment_context>"}],
            },
        },
        {
            "type": "response_item",
            "timestamp": "2024-02-01T09:00:03Z",
            "payload": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": "# AGENTS.md instructions for widgets"}],
            },
        },
        {
            "type": "response_item",
            "timestamp": "2024-02-01T09:00:04Z",
            "payload": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": "Why does the queue worker stall?"}],
            },
        },
        {"type": "event_msg", "timestamp": "2024-02-01T09:00:05Z", "payload": {"type": "token_count"}},
        {
            "type": "response_item",
            "timestamp": "2024-02-01T09:00:06Z",
            "payload": {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": "The queue worker holds a lock during retries."}],
            },
        },
    ]


@pytest.fixture
def codex_home(temp_dir):
    """A ~/.codex layout with one active and one archived rollout."""
    codex_dir = temp_dir / "codex"
    write_jsonl(
        codex_dir / "sessions" / "2024" / "02" / "01"
        / "rollout-2024-02-01T09-00-00-0199aaaa-bbbb-cccc-dddd-eeeeffff0000.jsonl",
        codex_records(),
    )
    write_jsonl(
        codex_dir / "archived_sessions" / "rollout-2024-01-02T09-00-00-0199aaaa-bbbb-cccc-dddd-eeeeffff0001.jsonl",
        codex_records(cwd="/Users/me/Code/other-project", timestamp="2024-01-02T09:00:00Z"),
    )
    write_jsonl(
        codex_dir / "session_index.jsonl",
        [
            {"id": "0199aaaa-bbbb-cccc-dddd-eeeeffff0000", "thread_name": "Queue stall"},
            "garbage",
        ],
    )
    return codex_dir


@pytest.fixture
def codex_transcript(codex_home):
    path = next((codex_home / "sessions").rglob("*.jsonl"))
    return TranscriptFile(
        path=path,
        session_id="0199aaaa-bbbb-cccc-dddd-eeeeffff0000",
        size=path.stat().st_size,
        project_dir="codex",
        source="codex",
        thread_name="Queue stall",
    )
