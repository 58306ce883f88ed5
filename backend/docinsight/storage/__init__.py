from docinsight.storage.base import DocumentStore
from docinsight.storage.factory import get_document_store
from docinsight.storage.memory_store import InMemoryDocumentStore

__all__ = ["DocumentStore", "InMemoryDocumentStore", "get_document_store"]
