"""Key/value stores for cached embeddings.

Two backends share one small interface: a flat JSON file (the default) that
is rewritten atomically as a whole, and a SQLite database. Vectors are packed
as float32 bytes in both, so they round-trip exactly.
"""

import base64
import json
import logging
import os
import sqlite3
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import numpy as np
import sqlite_vec

from agent_notes.config import CACHE_DIR, EmbeddingConfig

logger = logging.getLogger(__name__)

BACKENDS = ("json", "sqlite")


def pack_vector(vector: Sequence[float]) -> bytes:
    """Pack a vector as float32 bytes."""
    return sqlite_vec.serialize_float32([float(v) for v in vector])


def unpack_vector(blob: bytes) -> np.ndarray:
    """Inverse of ``pack_vector``."""
    return np.frombuffer(blob, dtype=np.float32).copy()


class EmbeddingStore(Protocol):
    """Minimal get/set/flush store the embedding cache runs on."""

    path: Path

    def load(self) -> None: ...

    def clear(self) -> None: ...

    def get(self, key: str) -> np.ndarray | None: ...

    def set(self, key: str, model: str, dimensions: int | None, vector: Sequence[float]) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...

    def __len__(self) -> int: ...


class JsonFileStore:
    """In-memory dict persisted as one JSON object.

    Layout: ``{key: {"model": str, "dimensions": int | null, "b64": str}}``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._entries: dict[str, dict] = {}

    def load(self) -> None:
        """Read the file; a missing or unreadable file is an empty cache."""
        self._entries = {}
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable embedding cache %s: %s", self.path, e)
            return
        if isinstance(data, dict):
            self._entries = {k: v for k, v in data.items() if isinstance(v, dict) and "b64" in v}

    def clear(self) -> None:
        self._entries = {}

    def get(self, key: str) -> np.ndarray | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return unpack_vector(base64.b64decode(entry["b64"]))

    def set(self, key: str, model: str, dimensions: int | None, vector: Sequence[float]) -> None:
        self._entries[key] = {
            "model": model,
            "dimensions": dimensions,
            "b64": base64.b64encode(pack_vector(vector)).decode("ascii"),
        }

    def flush(self) -> None:
        """Replace the file atomically with the current contents."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._entries, f)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._entries)


def get_connection(path: Path) -> sqlite3.Connection:
    """Get a connection to a cache database."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Initialize the cache schema."""
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS embeddings (
            key TEXT PRIMARY KEY,
            model TEXT NOT NULL,
            dimensions INTEGER,
            vector BLOB NOT NULL
        );
    """)
    conn.commit()


class SqliteStore:
    """Embedding cache in a SQLite file.

    Writes go into an open transaction that ``flush`` commits, so a reindex
    (``clear``) and its repopulation land together.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = get_connection(self.path)
            init_schema(self._conn)
        return self._conn

    def load(self) -> None:
        init_schema(self.conn)

    def clear(self) -> None:
        self.conn.execute("DELETE FROM embeddings")

    def get(self, key: str) -> np.ndarray | None:
        row = self.conn.execute("SELECT vector FROM embeddings WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return unpack_vector(row["vector"])

    def set(self, key: str, model: str, dimensions: int | None, vector: Sequence[float]) -> None:
        self.conn.execute(
            """
            INSERT OR REPLACE INTO embeddings (key, model, dimensions, vector)
            VALUES (?, ?, ?, ?)
            """,
            (key, model, dimensions, pack_vector(vector)),
        )

    def flush(self) -> None:
        self.conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __len__(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]


def cache_path(repo_root: Path, corpus: str, config: EmbeddingConfig, backend: str = "json") -> Path:
    """``<repo>/.cache/<corpus>/embeddings.<provider>.<model>.<dims>.<ext>``."""
    suffix = ".json" if backend == "json" else ".sqlite3"
    return repo_root / CACHE_DIR / corpus / config.cache_filename(suffix)


def open_store(path: Path, backend: str = "json") -> EmbeddingStore:
    if backend == "json":
        return JsonFileStore(path)
    if backend == "sqlite":
        return SqliteStore(path)
    raise ValueError(f"Unknown cache backend: {backend} (expected one of {', '.join(BACKENDS)})")
