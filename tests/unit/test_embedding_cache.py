"""Tests for the embedding_cache module."""

import json

import numpy as np
import pytest
from conftest import FakeProvider

from agent_notes.config import EmbeddingConfig
from agent_notes.embedding_cache import EmbeddingCache, cache_key
from agent_notes.errors import UpstreamEmbeddingError
from agent_notes.models import Chunk
from agent_notes.storage import JsonFileStore, SqliteStore

CONFIG = EmbeddingConfig(provider="openai", model="text-embedding-3-small")


def make_chunks(*texts: str) -> list[Chunk]:
    return [Chunk(id=f"c{i}", file_path="MEMORY.md", idx=i, text=t) for i, t in enumerate(texts)]


class FailingProvider(FakeProvider):
    def __init__(self, fail_on_call: int) -> None:
        super().__init__()
        self.fail_on_call = fail_on_call

    def embed(self, texts):
        if len(self.calls) + 1 == self.fail_on_call:
            self.calls.append(list(texts))
            raise UpstreamEmbeddingError("OpenAI", 500, "boom")
        return super().embed(texts)


def test_cache_key_covers_configuration():
    base = cache_key(CONFIG, "text")

    assert cache_key(CONFIG, "text") == base
    assert cache_key(EmbeddingConfig("openai", "text-embedding-3-small", 256), "text") != base
    assert cache_key(EmbeddingConfig("openai", "text-embedding-3-large"), "text") != base
    assert cache_key(EmbeddingConfig("sentence-transformers", "text-embedding-3-small"), "text") != base
    assert cache_key(CONFIG, "text", query=True) != base


def test_second_call_issues_no_embedding_requests(temp_dir):
    path = temp_dir / "embeddings.json"
    chunks = make_chunks("auth with jwt", "queue retries", "cache layout")

    provider = FakeProvider()
    first = EmbeddingCache(JsonFileStore(path), provider, CONFIG).get_or_compute(chunks)
    assert len(provider.calls) == 1

    again = FakeProvider()
    second = EmbeddingCache(JsonFileStore(path), again, CONFIG).get_or_compute(chunks)

    assert again.calls == []
    for a, b in zip(first, second):
        assert np.array_equal(a, b)


def test_only_missing_items_are_embedded(temp_dir):
    path = temp_dir / "embeddings.json"
    provider = FakeProvider()
    EmbeddingCache(JsonFileStore(path), provider, CONFIG).get_or_compute(make_chunks("auth"))

    provider = FakeProvider()
    EmbeddingCache(JsonFileStore(path), provider, CONFIG).get_or_compute(make_chunks("auth", "queue"))

    assert provider.embedded_texts == ["queue"]


def test_duplicate_texts_are_embedded_once(temp_dir):
    provider = FakeProvider()
    cache = EmbeddingCache(JsonFileStore(temp_dir / "e.json"), provider, CONFIG)

    vectors = cache.get_or_compute(make_chunks("same", "same", "other"))

    assert provider.embedded_texts == ["same", "other"]
    assert np.array_equal(vectors[0], vectors[1])


def test_texts_are_sanitized_before_embedding(temp_dir):
    provider = FakeProvider()
    cache = EmbeddingCache(JsonFileStore(temp_dir / "e.json"), provider, CONFIG)

    cache.get_or_compute(make_chunks("token sk-abcdefghijklmnopqrstuvwxyz"))

    assert provider.embedded_texts == ["token sk-REDACTED"]


def test_missing_items_are_batched(temp_dir):
    provider = FakeProvider()
    cache = EmbeddingCache(JsonFileStore(temp_dir / "e.json"), provider, CONFIG, batch_size=96)

    cache.get_or_compute(make_chunks(*[f"text {i}" for i in range(200)]))

    assert [len(call) for call in provider.calls] == [96, 96, 8]


def test_reindex_ignores_and_rewrites_cache(temp_dir):
    path = temp_dir / "embeddings.json"
    EmbeddingCache(JsonFileStore(path), FakeProvider(), CONFIG).get_or_compute(make_chunks("old", "kept"))

    provider = FakeProvider()
    EmbeddingCache(JsonFileStore(path), provider, CONFIG, reindex=True).get_or_compute(make_chunks("kept"))

    assert provider.embedded_texts == ["kept"]
    assert len(json.loads(path.read_text())) == 1


def test_batch_failure_aborts_but_keeps_completed_batches(temp_dir):
    path = temp_dir / "embeddings.json"
    provider = FailingProvider(fail_on_call=2)
    cache = EmbeddingCache(JsonFileStore(path), provider, CONFIG, batch_size=2)

    with pytest.raises(UpstreamEmbeddingError):
        cache.get_or_compute(make_chunks("a", "b", "c", "d", "e", "f"))

    assert len(provider.calls) == 2
    assert len(json.loads(path.read_text())) == 2


def test_query_embedding_is_cached_and_persisted(temp_dir):
    path = temp_dir / "embeddings.json"
    provider = FakeProvider()
    cache = EmbeddingCache(JsonFileStore(path), provider, CONFIG)

    vector = cache.embed_query("jwt auth")
    again = cache.embed_query("jwt auth")

    assert len(provider.calls) == 1
    assert np.array_equal(vector, again)
    assert len(json.loads(path.read_text())) == 1

    reopened = FakeProvider()
    EmbeddingCache(JsonFileStore(path), reopened, CONFIG).embed_query("jwt auth")
    assert reopened.calls == []


def test_query_and_chunk_with_same_text_use_separate_entries(temp_dir):
    provider = FakeProvider()
    cache = EmbeddingCache(JsonFileStore(temp_dir / "e.json"), provider, CONFIG)

    cache.get_or_compute(make_chunks("jwt"))
    cache.embed_query("jwt")

    assert provider.embedded_texts == ["jwt", "jwt"]


def test_works_with_sqlite_store(temp_dir):
    path = temp_dir / "embeddings.sqlite3"
    chunks = make_chunks("auth", "queue")

    store = SqliteStore(path)
    EmbeddingCache(store, FakeProvider(), CONFIG).get_or_compute(chunks)
    store.close()

    provider = FakeProvider()
    store = SqliteStore(path)
    EmbeddingCache(store, provider, CONFIG).get_or_compute(chunks)
    store.close()

    assert provider.calls == []
