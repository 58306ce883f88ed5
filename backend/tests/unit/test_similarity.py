"""
Unit Tests — cosine similarity, word overlap and SimilarityIndex
"""

from __future__ import annotations

import pytest

from docinsight.processing.similarity import SimilarityIndex, compare_texts, cosine_similarity


@pytest.mark.unit
class TestCosine:

    def test_identical_vectors(self):
        v = [0.3, -1.2, 4.0, 0.0]
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    @pytest.mark.parametrize(
        "a, b",
        [
            ([0.0, 0.0], [1.0, 2.0]),
            ([], []),
            (None, [1.0]),
            ([1.0, 2.0], [1.0, 2.0, 3.0]),
        ],
        ids=["zero-norm", "empty", "missing", "length-mismatch"],
    )
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0

    def test_symmetric_and_bounded(self):
        a, b = [0.2, 0.9, -0.4], [0.7, -0.1, 0.5]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
        assert -1.0 <= cosine_similarity(a, b) <= 1.0


@pytest.mark.unit
class TestCompareTexts:

    def test_jaccard(self):
        result = compare_texts("the cat sat", "the cat ran")
        # {the, cat} / {the, cat, sat, ran}
        assert result.similarity == pytest.approx(0.5)
        assert result.differences.added == ["ran"]
        assert result.differences.removed == ["sat"]
        assert result.differences.modified == []
        assert result.summary == "Documents are 50.0% similar based on word overlap analysis."

    def test_case_insensitive_and_identical(self):
        assert compare_texts("Hello World", "hello world").similarity == 1.0

    def test_both_empty(self):
        result = compare_texts("", "   ")
        assert result.similarity == 0.0
        assert result.summary.startswith("Documents are 0.0% similar")

    def test_disjoint(self):
        assert compare_texts("alpha beta", "gamma delta").similarity == 0.0

    def test_difference_samples_capped(self):
        a = " ".join(f"a{i}" for i in range(30))
        b = " ".join(f"b{i}" for i in range(30))
        result = compare_texts(a, b)
        assert len(result.differences.added) == 10
        assert result.differences.removed[:3] == ["a0", "a1", "a2"]


@pytest.mark.unit
class TestSimilarityIndex:

    def test_nearest_orders_by_score(self):
        index = SimilarityIndex(dimensions=3)
        index.add("x", [1.0, 0.0, 0.0])
        index.add("y", [0.7, 0.7, 0.0])
        index.add("z", [0.0, 0.0, 1.0])

        hits = index.nearest([1.0, 0.1, 0.0], top_k=2)

        assert [key for key, _ in hits] == ["x", "y"]
        assert hits[0][1] > hits[1][1]

    def test_exclude_and_ties_keep_insertion_order(self):
        index = SimilarityIndex(dimensions=2)
        index.add("first", [1.0, 0.0])
        index.add("second", [2.0, 0.0])
        index.add("self", [1.0, 0.0])

        hits = index.nearest([1.0, 0.0], top_k=5, exclude={"self"})

        assert [key for key, _ in hits] == ["first", "second"]

    def test_zero_vector_never_matches_above_others(self):
        index = SimilarityIndex(dimensions=2)
        index.add("zero", [0.0, 0.0])
        index.add("one", [0.0, 1.0])
        hits = index.nearest([0.0, 1.0])
        assert hits[0] == ("one", pytest.approx(1.0))
        assert hits[1] == ("zero", 0.0)

    def test_add_replaces_and_remove(self):
        index = SimilarityIndex(dimensions=2)
        index.add("a", [1.0, 0.0])
        index.add("a", [0.0, 1.0])
        assert len(index) == 1
        assert index.similarity("a", "a") == pytest.approx(1.0)

        index.remove("a")
        assert "a" not in index
        assert index.nearest([0.0, 1.0]) == []

    def test_wrong_dimensions_rejected(self):
        with pytest.raises(ValueError):
            SimilarityIndex(dimensions=3).add("a", [1.0, 2.0])

    def test_bad_query_returns_nothing(self):
        index = SimilarityIndex(dimensions=2)
        index.add("a", [1.0, 0.0])
        assert index.nearest([0.0, 0.0]) == []
        assert index.nearest([1.0, 0.0, 0.0]) == []
