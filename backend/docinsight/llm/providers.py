"""
Model Providers — injected text-completion and embedding capabilities

The analysis engine and embedding service never reach for a global client.
They receive a provider at construction time:

    CompletionProvider.complete(prompt) -> str
    EmbeddingProvider.embed(text)       -> list[float]

Either may raise on invalid requests, rate limits or exhausted quota.
Callers treat every raise the same way (fall back locally); the error
class name is only used to label the log line.

Tests substitute deterministic fakes that satisfy the same protocols.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from docinsight.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

ANALYST_SYSTEM_PROMPT = (
    "You are an expert document analyst. Provide accurate, structured analysis "
    "in valid JSON format only. Do not include any text outside the JSON."
)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------

@runtime_checkable
class CompletionProvider(Protocol):
    async def complete(self, prompt: str) -> str: ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...


# ---------------------------------------------------------------------------
# Error labelling (log only: never used to decide behaviour)
# ---------------------------------------------------------------------------

_RATE_LIMIT_EXCEPTION_TYPES = ("RateLimitError",)
_TRANSIENT_EXCEPTION_TYPES = (
    "ServiceUnavailableError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
    "ConnectTimeout",
    "ReadTimeout",
    "RemoteProtocolError",
    "TimeoutError",
)
_INVALID_REQUEST_EXCEPTION_TYPES = (
    "BadRequestError",
    "InvalidRequestError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
)


def classify_provider_error(exc: BaseException) -> str:
    """Short label for a provider exception: quota | rate_limit | transient | invalid_request | other."""
    name = type(exc).__name__
    if "insufficient_quota" in str(exc):
        return "quota"
    if any(name.endswith(n) for n in _RATE_LIMIT_EXCEPTION_TYPES):
        return "rate_limit"
    if any(name.endswith(n) for n in _TRANSIENT_EXCEPTION_TYPES):
        return "transient"
    if any(name.endswith(n) for n in _INVALID_REQUEST_EXCEPTION_TYPES):
        return "invalid_request"
    return "other"


# ---------------------------------------------------------------------------
# OpenAI-backed implementations
# ---------------------------------------------------------------------------

class OpenAICompletionProvider:
    """
    Chat completion through LangChain's ChatOpenAI.

    The client carries its own request timeout and max_retries=0: the engine
    makes exactly one attempt and then falls back.
    """

    def __init__(self, llm: BaseChatModel, system_prompt: str = ANALYST_SYSTEM_PROMPT) -> None:
        self._llm           = llm
        self._system_prompt = system_prompt

    @classmethod
    def from_settings(cls, cfg: Settings) -> "OpenAICompletionProvider":
        from langchain_openai import ChatOpenAI

        llm = ChatOpenAI(
            model=cfg.llm_model,
            api_key=cfg.openai_api_key,
            temperature=cfg.llm_temperature,
            max_tokens=cfg.llm_max_tokens,
            timeout=cfg.llm_timeout_seconds,
            max_retries=0,
        )
        return cls(llm)

    def build_messages(self, prompt: str) -> list[BaseMessage]:
        return [
            SystemMessage(content=self._system_prompt),
            HumanMessage(content=prompt),
        ]

    async def complete(self, prompt: str) -> str:
        result = await self._llm.ainvoke(self.build_messages(prompt))
        content = result.content
        if not isinstance(content, str):
            # multi-part content blocks → concatenate text parts
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return content


class OpenAIEmbeddingProvider:
    """Single-text embeddings via openai.AsyncOpenAI (does not block the event loop)."""

    def __init__(
        self,
        api_key:    str,
        model:      str   = "text-embedding-3-small",
        dimensions: int   = 1536,
        timeout:    float = 30.0,
    ) -> None:
        from openai import AsyncOpenAI

        self._client     = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model      = model
        self._dimensions = dimensions

    @classmethod
    def from_settings(cls, cfg: Settings) -> "OpenAIEmbeddingProvider":
        return cls(
            api_key=cfg.openai_api_key,
            model=cfg.embedding_model,
            dimensions=cfg.embedding_dimensions,
            timeout=cfg.embedding_timeout_seconds,
        )

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(
            model=self._model,
            input=[text],
        )
        if not response.data:
            return []
        return list(response.data[0].embedding)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_providers(
    cfg: Settings | None = None,
) -> tuple[CompletionProvider | None, EmbeddingProvider | None]:
    """
    Build the OpenAI providers, or (None, None) when no API key is configured.
    A None provider sends the engine and embedding service straight to their
    local fallbacks.
    """
    cfg = cfg or default_settings
    if not cfg.openai_configured:
        logger.warning("OpenAI API key not configured — using simulated analysis and random embeddings")
        return None, None

    return OpenAICompletionProvider.from_settings(cfg), OpenAIEmbeddingProvider.from_settings(cfg)
