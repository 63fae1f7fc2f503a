"""
Tests for document chunking and search.

Module: tests/test_rag.py
"""

import pytest

from woolcoat.rag import HaystackDocumentSearch, chunk_text


class TestChunkText:
    """Tests for chunk_text."""

    def test_short_text_single_chunk(self) -> None:
        """Test text shorter than a window is one chunk."""
        assert chunk_text("  hello world  ") == ["hello world"]

    def test_overlapping_windows(self) -> None:
        """Test consecutive chunks share the overlap."""
        chunks = chunk_text("abcdefghij", chunk_size=4, overlap=1)

        assert chunks == ["abcd", "defg", "ghij"]

    def test_empty_text(self) -> None:
        """Test blank text has no chunks."""
        assert chunk_text("   ") == []

    def test_invalid_window(self) -> None:
        """Test the overlap must be smaller than the window."""
        with pytest.raises(ValueError):
            chunk_text("abc", chunk_size=5, overlap=5)


class TestHaystackDocumentSearch:
    """Tests for HaystackDocumentSearch."""

    @pytest.mark.asyncio
    async def test_search_finds_indexed_text(self) -> None:
        """Test an indexed document is found by a matching query."""
        search = HaystackDocumentSearch()
        written = await search.index_document(
            "doc-1", "alice", "The circuit breaker opens after five consecutive failures."
        )

        hits = await search.search("circuit breaker", top_k=3, user_id="alice")

        assert written == 1
        assert hits[0].doc_id == "doc-1"
        assert hits[0].chunk_index == 1
        assert hits[0].score > 0
        assert "circuit breaker" in hits[0].content

    @pytest.mark.asyncio
    async def test_results_scoped_to_user(self) -> None:
        """Test one user's documents are invisible to another."""
        search = HaystackDocumentSearch()
        await search.index_document("doc-a", "alice", "Quarterly revenue grew strongly.")
        await search.index_document("doc-b", "bob", "Quarterly revenue fell sharply.")

        hits = await search.search("quarterly revenue", top_k=5, user_id="bob")

        assert [h.doc_id for h in hits] == ["doc-b"]

    @pytest.mark.asyncio
    async def test_empty_store(self) -> None:
        """Test searching an empty store returns nothing."""
        assert await HaystackDocumentSearch().search("anything", 5, "alice") == []

    @pytest.mark.asyncio
    async def test_reindex_overwrites(self) -> None:
        """Test indexing the same document id again replaces its chunks."""
        search = HaystackDocumentSearch()
        await search.index_document("doc-1", "alice", "first version about gateways")
        await search.index_document("doc-1", "alice", "second version about gateways")

        assert search.document_store.count_documents() == 1

    @pytest.mark.asyncio
    async def test_blank_document(self) -> None:
        """Test a blank document writes nothing."""
        assert await HaystackDocumentSearch().index_document("d", "alice", "  ") == 0

    @pytest.mark.asyncio
    async def test_reindex_with_fewer_chunks_drops_stale(self) -> None:
        """Test a shorter new version leaves no chunks of the old one behind."""
        search = HaystackDocumentSearch(chunk_size=10, chunk_overlap=2)
        await search.index_document("doc-1", "alice", "a" * 40)
        await search.index_document("doc-1", "alice", "short")

        chunks = await search.list_chunks("doc-1", "alice")

        assert [(c.chunk_index, c.content) for c in chunks] == [(1, "short")]


class TestDocumentManagement:
    """Tests for listing, inspecting and deleting documents."""

    @pytest.mark.asyncio
    async def test_chunks_numbered_from_one(self) -> None:
        """Test chunks come back in order starting at index 1."""
        search = HaystackDocumentSearch(chunk_size=4, chunk_overlap=1)
        await search.index_document("doc-1", "alice", "abcdefghij")

        chunks = await search.list_chunks("doc-1", "alice")

        assert [c.chunk_index for c in chunks] == [1, 2, 3]
        assert [c.content for c in chunks] == ["abcd", "defg", "ghij"]

    @pytest.mark.asyncio
    async def test_list_documents_per_user(self) -> None:
        """Test each user sees only their own documents with chunk counts."""
        search = HaystackDocumentSearch(chunk_size=4, chunk_overlap=1)
        await search.index_document("doc-a", "alice", "abcdefghij", file_name="notes.md")
        await search.index_document("doc-b", "bob", "xyz")

        documents = await search.list_documents("alice")

        assert len(documents) == 1
        assert documents[0].doc_id == "doc-a"
        assert documents[0].file_name == "notes.md"
        assert documents[0].chunk_count == 3
        assert await search.list_documents("carol") == []

    @pytest.mark.asyncio
    async def test_chunks_hidden_from_other_users(self) -> None:
        """Test another user cannot read a document's chunks."""
        search = HaystackDocumentSearch()
        await search.index_document("doc-a", "alice", "private notes")

        assert await search.list_chunks("doc-a", "bob") == []

    @pytest.mark.asyncio
    async def test_delete_document(self) -> None:
        """Test deleting removes the document from search and listings."""
        search = HaystackDocumentSearch()
        await search.index_document("doc-1", "alice", "gateway retries and fallbacks")

        removed = await search.delete_document("doc-1", "alice")

        assert removed == 1
        assert await search.search("gateway retries", 5, "alice") == []
        assert await search.list_documents("alice") == []

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self) -> None:
        """Test a user cannot delete someone else's document."""
        search = HaystackDocumentSearch()
        await search.index_document("doc-1", "alice", "gateway retries")

        assert await search.delete_document("doc-1", "bob") == 0
        assert len(await search.list_chunks("doc-1", "alice")) == 1

    @pytest.mark.asyncio
    async def test_same_id_for_two_users(self) -> None:
        """Test two users may reuse a document id without clobbering each other."""
        search = HaystackDocumentSearch()
        await search.index_document("doc-1", "alice", "alice text")
        await search.index_document("doc-1", "bob", "bob text")

        assert (await search.list_chunks("doc-1", "alice"))[0].content == "alice text"
        assert (await search.list_chunks("doc-1", "bob"))[0].content == "bob text"
