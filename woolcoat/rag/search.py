"""
Full-text document search backing the ``local_rag_search`` tool.

Module: woolcoat/rag/search.py

Documents are split into overlapping character windows, written to a
Haystack in-memory store tagged with their owner, and searched with BM25
restricted to the requesting user's documents. Chunks are numbered from 1.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import anyio
from haystack import Document
from haystack.components.retrievers.in_memory import InMemoryBM25Retriever
from haystack.document_stores.in_memory import InMemoryDocumentStore
from haystack.document_stores.types import DuplicatePolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchHit:
    """One matching chunk."""

    doc_id: str
    chunk_index: int
    score: float
    content: str


@dataclass(frozen=True)
class DocumentChunk:
    """One stored chunk of a document."""

    doc_id: str
    chunk_index: int
    content: str


@dataclass(frozen=True)
class DocumentInfo:
    """Summary of an indexed document."""

    doc_id: str
    file_name: Optional[str]
    chunk_count: int
    created_at: Optional[str] = None


class DocumentSearch(ABC):
    """Interface for per-user document search."""

    @abstractmethod
    async def index_document(
        self, doc_id: str, user_id: str, text: str, file_name: Optional[str] = None
    ) -> int:
        """
        Index a document for a user, replacing any earlier version.

        Returns:
            Number of chunks written
        """

    @abstractmethod
    async def search(self, question: str, top_k: int, user_id: str) -> List[SearchHit]:
        """Return up to ``top_k`` chunks of the user's documents matching the question."""

    @abstractmethod
    async def list_documents(self, user_id: str) -> List[DocumentInfo]:
        """List a user's documents, newest first."""

    @abstractmethod
    async def list_chunks(self, doc_id: str, user_id: str) -> List[DocumentChunk]:
        """Return a user's document chunks in order (empty when unknown)."""

    @abstractmethod
    async def delete_document(self, doc_id: str, user_id: str) -> int:
        """
        Delete a user's document.

        Returns:
            Number of chunks removed (0 when the document is unknown)
        """


def chunk_text(text: str, chunk_size: int = 500, overlap: int = 50) -> List[str]:
    """
    Split text into overlapping character windows.

    Args:
        text: Text to split
        chunk_size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        Non-blank chunks in order
    """
    if chunk_size <= overlap:
        raise ValueError("chunk_size must be larger than overlap")
    text = text.strip()
    chunks = []
    step = chunk_size - overlap
    for start in range(0, len(text), step):
        chunk = text[start : start + chunk_size].strip()
        if chunk:
            chunks.append(chunk)
        if start + chunk_size >= len(text):
            break
    return chunks


def _owner_filter(user_id: str, doc_id: Optional[str] = None) -> Dict[str, Any]:
    conditions = [{"field": "meta.user_id", "operator": "==", "value": user_id}]
    if doc_id is not None:
        conditions.append({"field": "meta.doc_id", "operator": "==", "value": doc_id})
    return {"operator": "AND", "conditions": conditions}


class HaystackDocumentSearch(DocumentSearch):
    """BM25 search over a Haystack in-memory document store."""

    def __init__(
        self,
        document_store: Optional[InMemoryDocumentStore] = None,
        chunk_size: int = 500,
        chunk_overlap: int = 50,
    ) -> None:
        self.document_store = document_store or InMemoryDocumentStore()
        self.retriever = InMemoryBM25Retriever(document_store=self.document_store)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    async def index_document(
        self, doc_id: str, user_id: str, text: str, file_name: Optional[str] = None
    ) -> int:
        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        created_at = datetime.now(timezone.utc).isoformat()
        documents = [
            Document(
                id=f"{user_id}:{doc_id}#{index}",
                content=chunk,
                meta={
                    "doc_id": doc_id,
                    "chunk_index": index,
                    "user_id": user_id,
                    "file_name": file_name,
                    "created_at": created_at,
                },
            )
            for index, chunk in enumerate(chunks, 1)
        ]
        if not documents:
            logger.warning(f"Document {doc_id} has no content to index")
            return 0

        def replace() -> int:
            self._delete_sync(doc_id, user_id)
            return self.document_store.write_documents(documents, policy=DuplicatePolicy.OVERWRITE)

        written = await anyio.to_thread.run_sync(replace)
        logger.info(f"Indexed document {doc_id} for user {user_id}: {written} chunks")
        return written

    async def search(self, question: str, top_k: int, user_id: str) -> List[SearchHit]:
        return await anyio.to_thread.run_sync(self._search_sync, question, top_k, user_id)

    def _search_sync(self, question: str, top_k: int, user_id: str) -> List[SearchHit]:
        if self.document_store.count_documents() == 0:
            return []

        result = self.retriever.run(
            query=question,
            filters={"field": "meta.user_id", "operator": "==", "value": user_id},
            top_k=top_k,
            scale_score=False,
        )
        hits = []
        for doc in result.get("documents", []):
            # BM25 returns non-matching documents with a zero score
            if not doc.score or doc.score <= 0:
                continue
            hits.append(
                SearchHit(
                    doc_id=str(doc.meta.get("doc_id", doc.id)),
                    chunk_index=int(doc.meta.get("chunk_index", 1)),
                    score=float(doc.score),
                    content=doc.content or "",
                )
            )
        logger.info(f"Search for user {user_id} returned {len(hits)} chunks")
        return hits

    async def list_documents(self, user_id: str) -> List[DocumentInfo]:
        stored = await anyio.to_thread.run_sync(
            lambda: self.document_store.filter_documents(filters=_owner_filter(user_id))
        )
        grouped: Dict[str, List[Document]] = {}
        for doc in stored:
            grouped.setdefault(str(doc.meta.get("doc_id", doc.id)), []).append(doc)

        infos = [
            DocumentInfo(
                doc_id=doc_id,
                file_name=chunks[0].meta.get("file_name"),
                chunk_count=len(chunks),
                created_at=chunks[0].meta.get("created_at"),
            )
            for doc_id, chunks in grouped.items()
        ]
        infos.sort(key=lambda info: info.created_at or "", reverse=True)
        return infos

    async def list_chunks(self, doc_id: str, user_id: str) -> List[DocumentChunk]:
        stored = await anyio.to_thread.run_sync(
            lambda: self.document_store.filter_documents(filters=_owner_filter(user_id, doc_id))
        )
        chunks = [
            DocumentChunk(
                doc_id=doc_id,
                chunk_index=int(doc.meta.get("chunk_index", 1)),
                content=doc.content or "",
            )
            for doc in stored
        ]
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    async def delete_document(self, doc_id: str, user_id: str) -> int:
        removed = await anyio.to_thread.run_sync(self._delete_sync, doc_id, user_id)
        if removed:
            logger.info(f"Deleted document {doc_id} for user {user_id}: {removed} chunks")
        return removed

    def _delete_sync(self, doc_id: str, user_id: str) -> int:
        stored = self.document_store.filter_documents(filters=_owner_filter(user_id, doc_id))
        if stored:
            self.document_store.delete_documents([doc.id for doc in stored])
        return len(stored)
