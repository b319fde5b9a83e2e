"""Chunking logic for markdown memory files."""

import re

from agent_notes.config import MAX_CHUNK_CHARS, MIN_CHUNK_CHARS
from agent_notes.models import Chunk, fingerprint

_FENCED_CODE = re.compile(r"```.*?```", re.DOTALL)
_TRAILING_WS = re.compile(r"[ \t]+\n")
_PARAGRAPH_BREAK = re.compile(r"\n{2,}")


def strip_fenced_code_blocks(content: str) -> str:
    """Remove ``` fenced blocks; code is not prose."""
    return _FENCED_CODE.sub("", content)


def normalize_whitespace(content: str) -> str:
    """Unix line endings, no trailing blanks on lines, trimmed."""
    content = content.replace("\r\n", "\n")
    content = _TRAILING_WS.sub("\n", content)
    return content.strip()


def split_paragraphs(
    content: str,
    max_chars: int = MAX_CHUNK_CHARS,
    min_chars: int = MIN_CHUNK_CHARS,
) -> list[str]:
    """Split cleaned content into chunk texts.

    Small paragraphs are merged until the buffer reaches ``min_chars`` or the
    next paragraph would push it past ``max_chars``. A paragraph longer than
    ``max_chars`` is hard-split into ``max_chars`` slices.
    """
    texts: list[str] = []
    buf = ""

    def flush() -> None:
        nonlocal buf
        text = buf.strip()
        if text:
            texts.append(text)
        buf = ""

    for raw in _PARAGRAPH_BREAK.split(content):
        para = raw.strip()
        if not para:
            continue

        if len(para) > max_chars:
            flush()
            for start in range(0, len(para), max_chars):
                texts.append(para[start : start + max_chars])
            continue

        if not buf:
            buf = para
            continue

        if len(buf) < min_chars or len(buf) + 2 + len(para) <= max_chars:
            buf = f"{buf}\n\n{para}"
        else:
            flush()
            buf = para

    flush()
    return texts


def chunk_markdown(
    file_path: str,
    content: str,
    max_chars: int = MAX_CHUNK_CHARS,
    min_chars: int = MIN_CHUNK_CHARS,
) -> list[Chunk]:
    """Create chunks from a markdown file.

    Chunk ids are fingerprints of (file_path, idx, text), so unchanged content
    keeps its identity, and its cached embedding, across runs.
    """
    cleaned = normalize_whitespace(strip_fenced_code_blocks(content))
    if not cleaned:
        return []

    return [
        Chunk(id=fingerprint(file_path, idx, text), file_path=file_path, idx=idx, text=text)
        for idx, text in enumerate(split_paragraphs(cleaned, max_chars, min_chars))
    ]
