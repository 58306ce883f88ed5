"""
Model Provider Package

Injected capabilities over the remote language model:
  - CompletionProvider  (prompt → text)
  - EmbeddingProvider   (text → vector)

Public API::

    from docinsight.llm import build_providers

    completion, embedding = build_providers(settings)
    # either is None when no API key is configured
"""

from docinsight.llm.providers import (
    CompletionProvider,
    EmbeddingProvider,
    OpenAICompletionProvider,
    OpenAIEmbeddingProvider,
    build_providers,
    classify_provider_error,
)

__all__ = [
    "CompletionProvider",
    "EmbeddingProvider",
    "OpenAICompletionProvider",
    "OpenAIEmbeddingProvider",
    "build_providers",
    "classify_provider_error",
]
