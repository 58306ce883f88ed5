"""
Embedding Service  —  one vector per document, never absent
══════════════════════════════════════════════════════════════

    text ──► truncate(embedding_max_input_chars) ──► EmbeddingProvider.embed()
                                                          │
                             timeout / raise / wrong length
                                                          ▼
                                         uniform(-1, 1) × 1536 fallback

The fallback vector is intentionally random: it only guarantees that
downstream code can always rely on a vector of the right length. It carries
no semantic meaning, so similarity scores against it are noise.

Single attempt, bounded by asyncio.wait_for, no retry.
"""

from __future__ import annotations

import asyncio
import logging

import numpy as np

from docinsight.core.config import Settings
from docinsight.core.errors import EmbeddingProviderError
from docinsight.llm.providers import EmbeddingProvider, classify_provider_error
from docinsight.schemas.analysis import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Usage::

        service = EmbeddingService.from_settings(settings, embedding_provider)
        vector  = await service.embed(text)      # len(vector) == 1536
    """

    def __init__(
        self,
        provider:        EmbeddingProvider | None,
        dimensions:      int   = EMBEDDING_DIMENSIONS,
        max_input_chars: int   = 8000,
        timeout_seconds: float = 30.0,
        rng:             np.random.Generator | None = None,
    ) -> None:
        self._provider        = provider
        self._dimensions      = dimensions
        self._max_input_chars = max_input_chars
        self._timeout_seconds = timeout_seconds
        self._rng             = rng or np.random.default_rng()

    @classmethod
    def from_settings(cls, cfg: Settings, provider: EmbeddingProvider | None) -> "EmbeddingService":
        return cls(
            provider=provider,
            dimensions=cfg.embedding_dimensions,
            max_input_chars=cfg.embedding_max_input_chars,
            timeout_seconds=cfg.embedding_timeout_seconds,
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def random_vector(self) -> list[float]:
        return self._rng.uniform(-1.0, 1.0, self._dimensions).tolist()

    async def embed(self, text: str) -> list[float]:
        if self._provider is None:
            logger.info("EmbeddingService | no provider configured — random vector")
            return self.random_vector()

        truncated = text[: self._max_input_chars]
        try:
            return await self._embed_remote(truncated)
        except asyncio.TimeoutError:
            logger.warning(
                "EmbeddingService | provider timed out after %.1fs — random vector",
                self._timeout_seconds,
            )
        except EmbeddingProviderError as exc:
            logger.warning("EmbeddingService | %s — random vector", exc.message)
        except Exception as exc:
            logger.warning(
                "EmbeddingService | provider error — random vector | kind=%s error=%s",
                classify_provider_error(exc), exc,
            )
        return self.random_vector()

    async def _embed_remote(self, text: str) -> list[float]:
        vector = await asyncio.wait_for(self._provider.embed(text), timeout=self._timeout_seconds)
        if vector is None or len(vector) != self._dimensions:
            raise EmbeddingProviderError(
                f"expected {self._dimensions} dimensions, got {0 if vector is None else len(vector)}"
            )
        return [float(v) for v in vector]
