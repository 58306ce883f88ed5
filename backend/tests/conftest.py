"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : store, owner_id, other_owner_id, make_document,
                    fake_completion, fake_embedding, model_reply,
                    simulated_processor,
                    mock_publisher, app_with_overrides, async_client

Environment strategy:
  - Storage is the in-memory DocumentStore; no PostgreSQL is needed.
  - No OpenAI key is configured, so the default wiring uses the simulated
    analyzer and random embeddings. Tests that need a "remote" model inject
    FakeCompletionProvider / FakeEmbeddingProvider explicitly.
  - Celery points at the in-memory broker; tasks are never sent anywhere.

How to run:
  pytest                                  # all tests
  pytest -m unit                          # unit tests only (fast, no I/O)
  pytest -m integration                   # HTTP tests through the ASGI app
  pytest backend/tests/unit/test_trends.py
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any docinsight imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("STORAGE_BACKEND",       "memory")
os.environ.setdefault("TASK_BACKEND",          "inprocess")
os.environ["OPENAI_API_KEY"] = ""   # never call a real model from tests
os.environ.setdefault("CELERY_BROKER_URL",     "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("DEBUG",                 "false")

from docinsight.analysis.engine import AnalysisEngine  # noqa: E402
from docinsight.processing.embeddings import EmbeddingService  # noqa: E402
from docinsight.schemas.documents import DocumentRecord, ProcessingStatus  # noqa: E402
from docinsight.storage.memory_store import InMemoryDocumentStore  # noqa: E402
from docinsight.workers.pipeline import DocumentProcessor  # noqa: E402

DIMS = 1536


# ─────────────────────────────────────────────────────────────────────────────
# Fake model providers
# ─────────────────────────────────────────────────────────────────────────────

class FakeCompletionProvider:
    """
    Deterministic CompletionProvider.

    reply  : string returned by complete() (a dict is JSON-encoded)
    error  : exception raised instead of replying
    delay  : seconds to sleep before replying (timeout tests)
    """

    def __init__(self, reply: str | dict | list | None = None, error: Exception | None = None, delay: float = 0.0):
        self.reply   = json.dumps(reply) if isinstance(reply, (dict, list)) else reply
        self.error   = error
        self.delay   = delay
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeEmbeddingProvider:
    """Returns `vector` (default: a fixed unit-ish vector of DIMS floats) or raises `error`."""

    def __init__(self, vector: list[float] | None = None, error: Exception | None = None, delay: float = 0.0):
        self.vector = vector if vector is not None else [0.01] * DIMS
        self.error  = error
        self.delay  = delay
        self.inputs: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.inputs.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.vector)


@pytest.fixture
def fake_completion():
    """Factory: fake_completion(reply=..., error=..., delay=...)."""
    return FakeCompletionProvider


@pytest.fixture
def fake_embedding():
    """Factory: fake_embedding(vector=..., error=..., delay=...)."""
    return FakeEmbeddingProvider


@pytest.fixture
def model_reply() -> dict:
    """A well-formed model response."""
    return {
        "summary": {
            "short":    "Quarterly pricing review.",
            "medium":   "The review covers pricing changes and customer response.",
            "detailed": "Pricing was revised in Q3. Customers responded well overall.",
        },
        "sentiment": {"score": 0.6, "label": "positive", "confidence": 0.9},
        "keywords":  ["pricing", "customers", "review"],
        "topics":    ["pricing", "customer feedback"],
        "entities":  [{"text": "Acme Corp", "label": "ORG", "confidence": 0.95}],
        "complexity": "moderate",
        "language":  "en",
    }


# ─────────────────────────────────────────────────────────────────────────────
# Owner and document fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")


@pytest.fixture
def other_owner_id() -> uuid.UUID:
    return uuid.UUID("bbbbbbbb-0000-0000-0000-000000000002")


@pytest.fixture
def sample_text() -> str:
    return (
        "Pricing changes were announced this quarter. Customers said the new "
        "pricing is a great improvement. Support teams reported fewer problems "
        "after the launch, and adoption grew in every region."
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def make_document(store, owner_id, sample_text):
    """Factory: insert a DocumentRecord into `store` and return it."""
    async def _build(
        text:   str | None = None,
        status: ProcessingStatus = ProcessingStatus.PENDING,
        owner:  uuid.UUID | None = None,
        **fields,
    ) -> DocumentRecord:
        body = sample_text if text is None else text
        record = DocumentRecord(
            owner_id=owner or owner_id,
            title=fields.pop("title", "Quarterly review"),
            original_file_name=fields.pop("original_file_name", "review.txt"),
            file_type=fields.pop("file_type", "txt"),
            file_size=len(body.encode()),
            mime_type="text/plain",
            extracted_text=body,
            word_count=len(body.split()),
            processing_status=status,
            **fields,
        )
        return await store.create_document(record)
    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline wiring
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def simulated_processor(store) -> DocumentProcessor:
    """DocumentProcessor with no remote providers (simulated analysis, seeded random vectors)."""
    return DocumentProcessor(
        store=store,
        engine=AnalysisEngine(provider=None),
        embeddings=EmbeddingService(provider=None, rng=np.random.default_rng(7)),
    )


@pytest.fixture
def mock_publisher():
    """Mocked TaskPublisher — records calls without scheduling any work."""
    publisher = MagicMock()
    publisher.publish_processing_task = AsyncMock(return_value=None)
    return publisher


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client with store / publisher overrides
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_with_overrides(store, mock_publisher):
    """
    FastAPI app with the process-wide singletons overridden:
      - get_store          → the per-test InMemoryDocumentStore
      - get_task_publisher → mock_publisher (nothing runs in the background)

    Tests that want background analysis override get_task_publisher again.
    """
    from docinsight.api.dependencies import get_store, get_task_publisher
    from docinsight.main import app

    app.dependency_overrides[get_store]          = lambda: store
    app.dependency_overrides[get_task_publisher] = lambda: mock_publisher

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client bound to the overridden app through ASGITransport."""
    from httpx import ASGITransport
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
