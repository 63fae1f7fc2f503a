"""Document search for retrieval-augmented tools."""

from .search import (
    DocumentChunk,
    DocumentInfo,
    DocumentSearch,
    HaystackDocumentSearch,
    SearchHit,
    chunk_text,
)

__all__ = [
    "DocumentChunk",
    "DocumentInfo",
    "DocumentSearch",
    "HaystackDocumentSearch",
    "SearchHit",
    "chunk_text",
]
