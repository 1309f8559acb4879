"""
Tests for context retrieval and context block assembly.
"""

from unittest.mock import MagicMock

import pytest

from folio.core.config import EmbeddingConfig, RAGOptions
from folio.core.embed import Embedder
from folio.core.errors import ProviderError
from folio.core.models import RAGContext
from folio.core.retrieve import build_context_block, context_for_page, retrieve_context
from folio.core.vector_index import PageVectorIndex

from fakes import FakeEmbeddingProvider, InMemoryPageStore, make_page


QUERY = "query about mixtures"


def _ctx(page_number, content, title=None, similarity=0.9):
    return RAGContext(
        page_id=f"chem-101:{page_number}",
        page_number=page_number,
        content=content,
        title=title,
        similarity=similarity,
    )


@pytest.fixture
def vector_embedder():
    """Embedder whose query vector points along the first axis."""
    provider = FakeEmbeddingProvider(dimensions=3, model="fake-embed", vectors={QUERY: [1.0, 0.0, 0.0]})
    return Embedder(provider, EmbeddingConfig(model="fake-embed", dimensions=3, max_chars=1000))


@pytest.fixture
def book_store():
    """Pages 1-5 with embeddings at decreasing similarity to the query."""
    return InMemoryPageStore([
        make_page(page_number=1, title="Intro", embedding=[1.0, 0.0, 0.0], embedding_model="fake-embed"),
        make_page(page_number=2, embedding=[0.8, 0.6, 0.0], embedding_model="fake-embed"),
        make_page(page_number=3, embedding=[0.0, 1.0, 0.0], embedding_model="fake-embed"),
        make_page(page_number=4, embedding=[0.6, 0.8, 0.0], embedding_model="other-model"),
        make_page(page_number=5, embedding=[1.0, 0.0, 0.0], embedding_model="fake-embed"),
        make_page(book_id="other-book", page_number=1, embedding=[1.0, 0.0, 0.0], embedding_model="fake-embed"),
    ])


class TestRetrieveContext:
    """Tests for similarity retrieval."""

    def test_disabled_makes_no_calls(self):
        embedder = MagicMock()
        store = MagicMock()
        result = retrieve_context("chem-101", 4, QUERY, RAGOptions(enabled=False), embedder, store)

        assert result == []
        embedder.embed.assert_not_called()
        store.similar_page_candidates.assert_not_called()

    def test_ranks_filters_and_scopes(self, vector_embedder, book_store):
        options = RAGOptions(enabled=True, similarity_threshold=0.3)
        result = retrieve_context("chem-101", 4, QUERY, options, vector_embedder, book_store)

        # page 3 is orthogonal, page 4 used another model, page 5 is later in the book
        assert [c.page_number for c in result] == [1, 2]
        assert result[0].similarity == pytest.approx(1.0, abs=1e-5)
        assert result[1].similarity == pytest.approx(0.8, abs=1e-5)
        assert result[0].title == "Intro"
        assert result[0].page_id == "chem-101:1"

    def test_current_page_is_excluded(self, vector_embedder, book_store):
        options = RAGOptions(enabled=True, similarity_threshold=0.3)
        result = retrieve_context("chem-101", 5, QUERY, options, vector_embedder, book_store)
        # page 5 matches the query exactly but is the page being summarized
        assert [c.page_number for c in result] == [1, 2]

    def test_truncates_to_max_pages(self, vector_embedder, book_store):
        options = RAGOptions(enabled=True, similarity_threshold=0.0, max_context_pages=1)
        result = retrieve_context("chem-101", 4, QUERY, options, vector_embedder, book_store)
        assert [c.page_number for c in result] == [1]

    def test_embedding_failure_returns_empty(self, book_store):
        embedder = MagicMock()
        embedder.embed.side_effect = ProviderError("fake", "boom", status_code=503)
        result = retrieve_context("chem-101", 4, QUERY, RAGOptions(enabled=True), embedder, book_store)
        assert result == []

    def test_store_failure_returns_empty(self, vector_embedder):
        store = MagicMock()
        store.similar_page_candidates.side_effect = RuntimeError("connection refused")
        result = retrieve_context("chem-101", 4, QUERY, RAGOptions(enabled=True), vector_embedder, store)
        assert result == []

    def test_context_for_page_without_embedder(self, book_store):
        assert context_for_page("chem-101", 4, QUERY, RAGOptions(enabled=True), None, book_store) == ""


class TestBuildContextBlock:
    """Tests for the character budget."""

    def test_formats_entries(self):
        block = build_context_block([_ctx(1, "alpha", title="Intro"), _ctx(2, "beta")], 4000)
        assert block == "Page 1 (Intro): alpha\n\nPage 2: beta\n\n"

    def test_empty(self):
        assert build_context_block([], 100) == ""

    def test_overflowing_entry_is_truncated_with_ellipsis(self):
        contexts = [_ctx(1, "a" * 20), _ctx(2, "b" * 50), _ctx(3, "c" * 5)]
        block = build_context_block(contexts, 40)

        assert len(block) == 40
        assert block.startswith("Page 1: " + "a" * 20 + "\n\n")
        assert block.endswith("...")
        assert "Page 3" not in block

    @pytest.mark.parametrize("max_length", [0, 1, 3, 10, 31, 32, 33, 100, 4000])
    def test_never_exceeds_budget(self, max_length):
        contexts = [_ctx(i, "x" * (10 * i)) for i in range(1, 6)]
        block = build_context_block(contexts, max_length)
        assert len(block) <= max_length

    def test_no_room_for_ellipsis_stops(self):
        contexts = [_ctx(1, "a" * 10), _ctx(2, "b" * 10)]
        first = "Page 1: " + "a" * 10 + "\n\n"
        block = build_context_block(contexts, len(first) + 3)
        assert block == first


class TestPageVectorIndex:
    """Tests for the FAISS-backed index."""

    def test_cosine_scores(self):
        index = PageVectorIndex(2)
        index.add([1, 2], [[2.0, 0.0], [0.0, 5.0]])
        results = index.search([3.0, 0.0])
        assert results[0][0] == 1
        assert results[0][1] == pytest.approx(1.0, abs=1e-5)
        assert results[1][1] == pytest.approx(0.0, abs=1e-5)

    def test_skips_wrong_dimensions(self):
        index = PageVectorIndex(2)
        index.add([1, 2], [[1.0, 0.0], [1.0, 0.0, 0.0]])
        assert len(index) == 1

    def test_empty_index(self):
        assert PageVectorIndex(2).search([1.0, 0.0]) == []
