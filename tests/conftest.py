"""
Pytest configuration and shared fixtures.
"""

import pytest

from folio.core.config import CompletionConfig, CompliancePolicy, EmbeddingConfig, RAGOptions
from folio.core.embed import Embedder

from fakes import FakeEmbeddingProvider, InMemoryPageStore, RecordingInvalidator


@pytest.fixture
def completion_config() -> CompletionConfig:
    return CompletionConfig(api_key="test", model="fake-model", max_tokens=256)


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    return EmbeddingConfig(api_key="test", model="fake-embed", dimensions=4, max_chars=50)


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider(dimensions=4, model="fake-embed")


@pytest.fixture
def embedder(embedding_provider, embedding_config) -> Embedder:
    return Embedder(embedding_provider, embedding_config)


@pytest.fixture
def store() -> InMemoryPageStore:
    return InMemoryPageStore()


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


@pytest.fixture
def policy() -> CompliancePolicy:
    return CompliancePolicy(strategy="penalty", penalty_per_violation=15, min_compliance_score=70)


@pytest.fixture
def rag_enabled() -> RAGOptions:
    return RAGOptions(enabled=True, max_context_pages=5, similarity_threshold=0.3, max_context_length=4000)

