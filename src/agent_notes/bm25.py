"""Okapi BM25 scoring over an in-memory corpus."""

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from agent_notes.config import BM25_B, BM25_K1
from agent_notes.tokenizer import tokenize


@dataclass
class CorpusStats:
    """Per-query corpus statistics.

    ``doc_freq`` only covers the query terms; nothing else is ever looked up.
    """

    total_docs: int
    avg_doc_len: float
    doc_freq: dict[str, int] = field(default_factory=dict)


def compute_corpus_stats(
    query_tokens: Iterable[str], docs_tokens: Sequence[Sequence[str]]
) -> CorpusStats:
    """Count document frequency for query terms and the average doc length."""
    doc_freq = dict.fromkeys(query_tokens, 0)
    total_len = 0

    for tokens in docs_tokens:
        total_len += len(tokens)
        unique = set(tokens)
        for term in doc_freq:
            if term in unique:
                doc_freq[term] += 1

    total_docs = len(docs_tokens)
    avg_doc_len = total_len / total_docs if total_docs else 0.0
    return CorpusStats(total_docs=total_docs, avg_doc_len=avg_doc_len or 1.0, doc_freq=doc_freq)


def idf(total_docs: int, df: int) -> float:
    return math.log(1 + (total_docs - df + 0.5) / (df + 0.5))


def bm25_score(
    query_tokens: Sequence[str],
    doc_tokens: Sequence[str],
    stats: CorpusStats,
    k1: float = BM25_K1,
    b: float = BM25_B,
) -> float:
    """Score one document against the query.

    Empty documents and single-document corpora score 0.
    """
    if not doc_tokens or stats.total_docs <= 1:
        return 0.0

    tf = Counter(doc_tokens)
    doc_len = len(doc_tokens)
    norm = k1 * (1 - b + b * (doc_len / stats.avg_doc_len))

    score = 0.0
    for term in query_tokens:
        term_tf = tf.get(term, 0)
        if term_tf == 0:
            continue
        df = stats.doc_freq.get(term, 0)
        score += idf(stats.total_docs, df) * (term_tf * (k1 + 1)) / (term_tf + norm)

    return score


def score_documents(
    query: str,
    texts: Sequence[str],
    k1: float = BM25_K1,
    b: float = BM25_B,
) -> list[float]:
    """BM25 score for every text, in input order."""
    query_tokens = tokenize(query)
    docs_tokens = [tokenize(t) for t in texts]
    stats = compute_corpus_stats(query_tokens, docs_tokens)
    return [bm25_score(query_tokens, tokens, stats, k1, b) for tokens in docs_tokens]
