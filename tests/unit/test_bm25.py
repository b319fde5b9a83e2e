"""Tests for the bm25 module."""

import math

import pytest

from agent_notes.bm25 import CorpusStats, bm25_score, compute_corpus_stats, idf, score_documents
from agent_notes.tokenizer import tokenize


def test_fox_example_ranks_fox_documents_first():
    scores = score_documents("fox", ["fox jumps", "fox sleeps", "dog sleeps"])

    assert scores[0] > 0
    assert scores[1] > 0
    assert scores[2] == 0
    assert scores[0] == pytest.approx(scores[1])


def test_corpus_stats_only_counts_query_terms():
    docs = [tokenize("fox jumps"), tokenize("fox sleeps"), tokenize("dog sleeps soundly")]

    stats = compute_corpus_stats(["fox", "cat"], docs)

    assert stats.total_docs == 3
    assert stats.doc_freq == {"fox": 2, "cat": 0}
    assert stats.avg_doc_len == pytest.approx(7 / 3)


def test_corpus_stats_empty_corpus():
    stats = compute_corpus_stats(["fox"], [])

    assert stats.total_docs == 0
    assert stats.avg_doc_len == 1.0


def test_score_matches_formula():
    stats = CorpusStats(total_docs=10, avg_doc_len=4.0, doc_freq={"fox": 2})
    doc = ["fox", "fox", "jumps"]
    k1, b = 1.2, 0.75

    expected = (
        math.log(1 + (10 - 2 + 0.5) / (2 + 0.5))
        * (2 * (k1 + 1))
        / (2 + k1 * (1 - b + b * (3 / 4.0)))
    )

    assert bm25_score(["fox"], doc, stats) == pytest.approx(expected)


def test_score_is_zero_without_overlap():
    stats = CorpusStats(total_docs=5, avg_doc_len=3.0, doc_freq={"fox": 1})
    assert bm25_score(["fox"], ["dog", "sleeps"], stats) == 0.0


def test_degenerate_inputs_score_zero():
    stats = CorpusStats(total_docs=5, avg_doc_len=3.0, doc_freq={"fox": 1})
    assert bm25_score(["fox"], [], stats) == 0.0
    assert score_documents("fox", ["fox"]) == [0.0]
    assert score_documents("fox", ["", "fox"])[0] == 0.0


def test_positive_whenever_term_is_not_universal():
    texts = ["alpha beta", "beta gamma", "gamma delta", "alpha alpha alpha delta"]
    for term in ("alpha", "beta", "gamma", "delta"):
        scores = score_documents(term, texts)
        for text, score in zip(texts, scores):
            if term in tokenize(text):
                assert score > 0
            else:
                assert score == 0


def test_idf_is_positive_even_for_universal_terms():
    assert idf(3, 3) > 0


def test_custom_parameters_change_scores():
    texts = ["fox fox fox fox", "fox dog", "dog cat"]
    default = score_documents("fox", texts)
    saturated = score_documents("fox", texts, k1=0.1)

    assert default[0] != pytest.approx(saturated[0])
