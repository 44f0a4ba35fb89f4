"""
Unit tests for hybrid search utilities.

Tests the pure functions: n-gram seeds, RRF scoring and weighted fusion of
ranked lists.
"""

import math

import pytest

from graph_memory.models.memory import SearchResult
from graph_memory.utils.hybrid_search import (
    STOP_WORDS,
    fuse_ranked_lists,
    query_ngrams,
    rrf_score,
)


def _r(mem_id: str, score: float = 1.0, text: str | None = None) -> SearchResult:
    return SearchResult(id=mem_id, text=text or f"text of {mem_id}", score=score)


class TestStopWords:
    def test_stop_words_is_frozenset(self):
        assert isinstance(STOP_WORDS, frozenset)


class TestQueryNgrams:
    def test_whole_query_first(self):
        grams = query_ngrams("Where does Tarun Singh work")
        assert grams[0] == "where does tarun singh work"
        assert "tarun singh" in grams
        assert "tarun" in grams

    def test_single_stop_words_skipped(self):
        assert "does" not in query_ngrams("Where does Tarun work")

    def test_empty(self):
        assert query_ngrams("   ") == []


class TestRRFScore:
    def test_rank_1_default_k(self):
        assert math.isclose(rrf_score(1), 1 / 61, rel_tol=1e-9)

    def test_rank_1_custom_k(self):
        assert math.isclose(rrf_score(1, k=30), 1 / 31, rel_tol=1e-9)

    def test_invalid_rank(self):
        assert rrf_score(0) == 0.0
        assert rrf_score(-1) == 0.0


class TestFuseRankedLists:
    def test_items_in_several_lists_rise(self):
        vector = [_r("a"), _r("b"), _r("c")]
        bm25 = [_r("c"), _r("b")]
        graph = [_r("b")]

        fused = fuse_ranked_lists([vector, bm25, graph])

        assert fused[0].id == "b"
        assert math.isclose(fused[0].score, 1 / 62 + 1 / 62 + 1 / 61)
        assert {r.id for r in fused} == {"a", "b", "c"}

    def test_weights_apply(self):
        fused = fuse_ranked_lists([[_r("a")], [_r("b")]], weights=[1.0, 2.0])
        assert [r.id for r in fused] == ["b", "a"]

    def test_first_occurrence_keeps_text(self):
        fused = fuse_ranked_lists([[_r("a", text="from vector")], [_r("a", text="from bm25")]])
        assert fused[0].text == "from vector"

    def test_ties_broken_by_id(self):
        fused = fuse_ranked_lists([[_r("z")], [_r("a")]])
        assert [r.id for r in fused] == ["a", "z"]

    def test_empty_inputs(self):
        assert fuse_ranked_lists([[], [], []]) == []

    def test_weight_length_mismatch(self):
        with pytest.raises(ValueError):
            fuse_ranked_lists([[_r("a")]], weights=[1.0, 1.0])
