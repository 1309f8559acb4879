"""Embedding generation for page text; one call per text, no caching."""

import logging
from typing import List, Optional

from .config import EmbeddingConfig, get_embedding_config
from .errors import ProviderError
from .providers import EmbeddingProvider, build_embedding_provider

logger = logging.getLogger(__name__)


class Embedder:
    """Turns page text into a fixed-length vector for the configured model."""

    def __init__(self, provider: EmbeddingProvider, config: EmbeddingConfig):
        self.provider = provider
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def dimensions(self) -> int:
        return self.config.dimensions

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Text longer than ``max_chars`` is truncated, never split into several
        calls. A vector of the wrong length is rejected outright.

        Raises:
            ProviderError: the provider failed or returned a malformed vector
        """
        if len(text) > self.config.max_chars:
            truncated = text[:self.config.max_chars]
            logger.warning(f"Truncated text from {len(text)} to {len(truncated)} characters")
            text = truncated

        vector = self.provider.embed_text(text)

        if len(vector) != self.config.dimensions:
            raise ProviderError(
                self.provider.name,
                f"expected {self.config.dimensions} dimensions, got {len(vector)}"
            )
        return [float(v) for v in vector]


def build_embedder(config: Optional[EmbeddingConfig] = None) -> Embedder:
    """Build an embedder backed by the configured OpenAI-compatible endpoint."""
    if config is None:
        config = get_embedding_config()
    return Embedder(build_embedding_provider(config), config)
