"""
Text Extraction — file bytes + declared type → raw text
════════════════════════════════════════════════════════

Plain text and markdown are decoded in-process. Binary formats (pdf, docx)
are an external capability: a handler must be registered for them, e.g.

    extractor = TextExtractor()
    extractor.register("pdf", my_pdf_to_text)

Any failure (unknown type, no handler, handler raised, undecodable bytes)
surfaces as ExtractionError. The ingestion service decides what to do with it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from docinsight.core.errors import ExtractionError

logger = logging.getLogger(__name__)

ExtractFn = Callable[[bytes], str]


def decode_text(data: bytes) -> str:
    """UTF-8 (BOM tolerated), falling back to latin-1."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


class TextExtractor:
    """Registry of per-file-type extraction functions."""

    def __init__(self) -> None:
        self._handlers: dict[str, ExtractFn] = {
            "txt": decode_text,
            "md":  decode_text,
        }

    def register(self, file_type: str, fn: ExtractFn) -> None:
        self._handlers[file_type.lower().lstrip(".")] = fn

    def supports(self, file_type: str) -> bool:
        return file_type.lower().lstrip(".") in self._handlers

    def extract(self, data: bytes, file_type: str, file_name: str) -> str:
        key = file_type.lower().lstrip(".")
        handler = self._handlers.get(key)
        if handler is None:
            raise ExtractionError(file_name, key, f"no text extractor registered for '{key}'")

        try:
            text = handler(data)
        except ExtractionError:
            raise
        except Exception as exc:
            logger.warning("TextExtractor | handler failed | file=%s type=%s error=%s", file_name, key, exc)
            raise ExtractionError(file_name, key, str(exc)) from exc

        logger.debug("TextExtractor | ok | file=%s type=%s chars=%d", file_name, key, len(text))
        return text
