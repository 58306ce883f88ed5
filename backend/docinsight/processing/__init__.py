"""
Document Processing Package
════════════════════════════

  extractor.py   TextExtractor — per-type text extraction registry
  embeddings.py  EmbeddingService — provider call with random-vector fallback
  similarity.py  cosine / Jaccard metrics and the in-memory SimilarityIndex
"""

from docinsight.processing.embeddings import EmbeddingService
from docinsight.processing.extractor import TextExtractor
from docinsight.processing.similarity import SimilarityIndex, compare_texts, cosine_similarity

__all__ = [
    "EmbeddingService",
    "TextExtractor",
    "SimilarityIndex",
    "compare_texts",
    "cosine_similarity",
]
