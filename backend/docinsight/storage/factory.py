"""
Document Store Factory

Selects the backend (memory | postgres) from config. The rest of the app
only imports get_document_store(), never the concrete classes.

One store per process: the in-memory backend keeps its state on the
instance, so every caller must share it.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from docinsight.core.config import settings
from docinsight.storage.base import DocumentStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    backend = settings.storage_backend.lower()

    if backend == "memory":
        from docinsight.storage.memory_store import InMemoryDocumentStore
        if settings.task_backend.lower() == "celery":
            logger.warning("In-memory storage is not shared with Celery workers; use storage_backend=postgres")
        return InMemoryDocumentStore()

    if backend == "postgres":
        from docinsight.db.session import get_sessionmaker
        from docinsight.storage.sql_store import SqlDocumentStore
        return SqlDocumentStore(get_sessionmaker())

    raise ValueError(
        f"Unknown storage backend: '{backend}'. "
        f"Valid options: 'memory', 'postgres'"
    )
