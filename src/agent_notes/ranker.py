"""Keyword and hybrid (keyword + semantic) ranking."""

import math
from collections.abc import Callable, Sequence

import numpy as np

from agent_notes.bm25 import score_documents
from agent_notes.config import RankingConfig
from agent_notes.models import RankedResult, T


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0 if either is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Embedding dimension mismatch: {va.shape[0]} != {vb.shape[0]}")
    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb)) / denom


def normalize_scores(
    results: Sequence[RankedResult[T]], get_score: Callable[[RankedResult[T]], float]
) -> dict[str, float]:
    """Min-max normalize to [0, 1] keyed by item id; all-equal scores map to 0."""
    scores = [get_score(r) for r in results]
    if not scores:
        return {}
    lo, hi = min(scores), max(scores)
    if not (math.isfinite(lo) and math.isfinite(hi)) or lo == hi:
        return {r.item.id: 0.0 for r in results}

    normalized: dict[str, float] = {}
    for r, s in zip(results, scores, strict=True):
        value = (s - lo) / (hi - lo)
        normalized[r.item.id] = 0.0 if math.isnan(value) else min(1.0, max(0.0, value))
    return normalized


def _sorted_desc(
    results: Sequence[RankedResult[T]], get_score: Callable[[RankedResult[T]], float]
) -> list[RankedResult[T]]:
    # sorted() is stable, so ties keep discovery order
    return sorted(results, key=lambda r: -get_score(r))


def score_items(
    query: str, items: Sequence[T], config: RankingConfig | None = None
) -> list[RankedResult[T]]:
    """BM25 for every item, in discovery order."""
    config = config or RankingConfig()
    scores = score_documents(query, [item.text for item in items], k1=config.k1, b=config.b)
    return [RankedResult(item=item, bm25=score) for item, score in zip(items, scores, strict=True)]


def rank_keyword(
    query: str, items: Sequence[T], config: RankingConfig | None = None
) -> list[RankedResult[T]]:
    """Rank purely by BM25, descending. Zero scores sort last."""
    return _sorted_desc(score_items(query, items, config), lambda r: r.bm25)


def rank_hybrid(
    query: str,
    items: Sequence[T],
    vectors: Sequence[Sequence[float] | None],
    query_vector: Sequence[float],
    config: RankingConfig | None = None,
) -> list[RankedResult[T]]:
    """Fuse BM25 and cosine similarity over a bounded candidate set.

    Candidates are the union of the top ``candidate_window`` items by each
    signal. Both signals are min-max normalized over exactly that set, then
    combined with the configured weights.
    """
    config = config or RankingConfig()
    results = score_items(query, items, config)

    for result, vector in zip(results, vectors, strict=True):
        result.cosine = 0.0 if vector is None else cosine_similarity(query_vector, vector)

    window = config.candidate_window
    top_keyword = _sorted_desc(results, lambda r: r.bm25)[:window]
    top_semantic = _sorted_desc(results, lambda r: r.cosine or 0.0)[:window]

    position: dict[str, int] = {}
    for i, r in enumerate(results):
        position.setdefault(r.item.id, i)

    by_id: dict[str, RankedResult[T]] = {}
    for r in top_keyword + top_semantic:
        by_id.setdefault(r.item.id, r)
    # Discovery order, so equal combined scores keep it through the stable sort
    candidates = sorted(by_id.values(), key=lambda r: position[r.item.id])

    norm_bm25 = normalize_scores(candidates, lambda r: r.bm25)
    norm_cos = normalize_scores(candidates, lambda r: r.cosine or 0.0)

    for r in candidates:
        r.combined = (
            config.keyword_weight * norm_bm25[r.item.id]
            + config.semantic_weight * norm_cos[r.item.id]
        )

    return _sorted_desc(candidates, lambda r: r.combined or 0.0)


def displayable(results: Sequence[RankedResult[T]], limit: int) -> list[RankedResult[T]]:
    """Top ``limit`` (at least one) results, dropping keyword-mode zero scores."""
    top = list(results[: max(1, limit)])
    return [r for r in top if r.combined is not None or r.bm25 > 0]
