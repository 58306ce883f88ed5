"""
Similarity — cosine over embeddings, Jaccard over words
════════════════════════════════════════════════════════

Two independent metrics:

  cosine_similarity(a, b)   angular closeness of two embedding vectors
  compare_texts(a, b)       |A ∩ B| / |A ∪ B| over lowercase whitespace tokens

The word-overlap metric needs no embeddings and is explainable, so it backs
quick comparisons and anything that runs before vectors exist.

SimilarityIndex keeps an in-memory matrix of vectors for nearest-neighbour
queries over one owner's documents.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence

import numpy as np

from docinsight.schemas.documents import TextComparison, TextDifferences

logger = logging.getLogger(__name__)

DIFFERENCE_SAMPLE_SIZE = 10


# ---------------------------------------------------------------------------
# Cosine
# ---------------------------------------------------------------------------

def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """
    dot(a, b) / (|a| · |b|)

    Returns 0.0 instead of raising when either vector is missing or empty,
    when either norm is zero, or when the lengths differ.
    """
    if a is None or b is None or len(a) == 0 or len(b) == 0:
        return 0.0
    if len(a) != len(b):
        logger.warning("cosine_similarity | length mismatch %d != %d", len(a), len(b))
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # float error can push |v|·|v| a hair past 1
    return max(-1.0, min(1.0, score))


# ---------------------------------------------------------------------------
# Word overlap
# ---------------------------------------------------------------------------

def _ordered_words(text: str) -> list[str]:
    return list(dict.fromkeys(text.lower().split()))


def compare_texts(text_a: str, text_b: str) -> TextComparison:
    """
    Jaccard similarity over whitespace-tokenized lowercase word sets.

    `differences` lists sample words unique to each side (first-seen order);
    nothing is inferred about edits, so `modified` stays empty.
    """
    words_a = _ordered_words(text_a)
    words_b = _ordered_words(text_b)
    set_a, set_b = set(words_a), set(words_b)

    union = set_a | set_b
    similarity = len(set_a & set_b) / len(union) if union else 0.0

    return TextComparison(
        similarity=similarity,
        differences=TextDifferences(
            added=[w for w in words_b if w not in set_a][:DIFFERENCE_SAMPLE_SIZE],
            removed=[w for w in words_a if w not in set_b][:DIFFERENCE_SAMPLE_SIZE],
            modified=[],
        ),
        summary=f"Documents are {similarity * 100:.1f}% similar based on word overlap analysis.",
    )


# ---------------------------------------------------------------------------
# Nearest neighbours
# ---------------------------------------------------------------------------

class SimilarityIndex:
    """
    In-memory cosine index.

    Usage::

        index = SimilarityIndex(dimensions=1536)
        index.add(doc.id, doc.analysis.embeddings)
        hits = index.nearest(query_vector, top_k=5, exclude={doc.id})
        # [(key, score), ...] highest score first

    Zero vectors are accepted but never match (score 0).
    """

    def __init__(self, dimensions: int = 1536) -> None:
        self._dimensions = dimensions
        self._keys:    list[Hashable] = []
        self._vectors: list[np.ndarray] = []

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys

    def add(self, key: Hashable, vector: Sequence[float]) -> None:
        if len(vector) != self._dimensions:
            raise ValueError(f"vector must have {self._dimensions} dimensions, got {len(vector)}")
        array = np.asarray(vector, dtype=np.float64)
        if key in self._keys:
            self._vectors[self._keys.index(key)] = array
        else:
            self._keys.append(key)
            self._vectors.append(array)

    def remove(self, key: Hashable) -> None:
        if key in self._keys:
            i = self._keys.index(key)
            del self._keys[i]
            del self._vectors[i]

    def similarity(self, key_a: Hashable, key_b: Hashable) -> float:
        a = self._vectors[self._keys.index(key_a)]
        b = self._vectors[self._keys.index(key_b)]
        return cosine_similarity(a, b)

    def nearest(
        self,
        vector:  Sequence[float],
        top_k:   int = 5,
        exclude: set[Hashable] | None = None,
    ) -> list[tuple[Hashable, float]]:
        if not self._keys or top_k <= 0:
            return []

        query = np.asarray(vector, dtype=np.float64)
        if query.shape != (self._dimensions,):
            return []
        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            return []

        matrix = np.vstack(self._vectors)
        norms = np.linalg.norm(matrix, axis=1)
        safe_norms = np.where(norms == 0.0, 1.0, norms)
        scores = np.where(norms == 0.0, 0.0, (matrix @ query) / (safe_norms * query_norm))
        scores = np.clip(scores, -1.0, 1.0)

        excluded = exclude or set()
        # stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")
        hits: list[tuple[Hashable, float]] = []
        for i in order:
            key = self._keys[i]
            if key in excluded:
                continue
            hits.append((key, float(scores[i])))
            if len(hits) >= top_k:
                break
        return hits
