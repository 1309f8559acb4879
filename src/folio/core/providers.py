"""Completion and embedding provider adapters.

Each provider is one explicit adapter over an OpenAI-compatible endpoint. The
base URL is resolved once, when the adapter is built at startup; nothing is
probed per call. SDK-level retries are disabled: a failed call surfaces as a
``ProviderError`` and the caller decides what to do with it.
"""

from typing import List, Optional, Protocol
from dataclasses import dataclass
import logging

import openai

from .config import CompletionConfig, EmbeddingConfig
from .errors import ProviderError

logger = logging.getLogger(__name__)

# Finish reasons that mean "the model ran out of output budget"
TRUNCATION_REASONS = frozenset({"length", "max_tokens", "MAX_TOKENS"})


@dataclass
class CompletionRequest:
    system_prompt: str
    user_prompt: str
    temperature: float = 0.0
    max_tokens: int = 8192


@dataclass
class CompletionResponse:
    content: str
    finish_reason: Optional[str] = None

    @property
    def truncated(self) -> bool:
        return self.finish_reason in TRUNCATION_REASONS


class CompletionProvider(Protocol):
    """Narrow request/response contract for text completion."""
    name: str

    def complete(self, request: CompletionRequest) -> CompletionResponse: ...


class EmbeddingProvider(Protocol):
    """Narrow request/response contract for text embeddings. Input is pre-truncated."""
    name: str
    model: str

    def embed_text(self, text: str) -> List[float]: ...


def _provider_error(provider: str, exc: openai.OpenAIError) -> ProviderError:
    """Translate an SDK exception, keeping the upstream diagnostic text."""
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError(provider, f"request timed out: {exc}")
    if isinstance(exc, openai.APIStatusError):
        detail = exc.response.text if exc.response is not None else str(exc)
        return ProviderError(provider, detail or str(exc), status_code=exc.status_code)
    return ProviderError(provider, str(exc))


class OpenAICompletionProvider:
    """Chat completions against a single OpenAI-compatible endpoint."""

    def __init__(self, config: CompletionConfig, client: Optional[openai.OpenAI] = None):
        self.config = config
        self.name = f"openai:{config.model}"
        if client is None:
            if not config.api_key:
                raise ValueError("Completion API key not found in environment variables")
            client = openai.OpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.timeout_seconds,
                max_retries=0,
            )
        self.client = client

    def complete(self, request: CompletionRequest) -> CompletionResponse:
        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt}
                ],
                temperature=request.temperature,
                max_tokens=request.max_tokens
            )
        except openai.OpenAIError as e:
            logger.error(f"Completion call failed: {e}")
            raise _provider_error(self.name, e) from e

        if not response.choices:
            raise ProviderError(self.name, "response contained no choices")

        choice = response.choices[0]
        content = choice.message.content or ""
        if not content.strip():
            raise ProviderError(self.name, "empty content returned")

        return CompletionResponse(content=content, finish_reason=choice.finish_reason)


class OpenAIEmbeddingProvider:
    """Embeddings against a single OpenAI-compatible endpoint."""

    def __init__(self, config: EmbeddingConfig, client: Optional[openai.OpenAI] = None):
        self.config = config
        self.model = config.model
        self.name = f"openai:{config.model}"
        if client is None:
            if not config.api_key:
                raise ValueError("Embedding API key not found in environment variables")
            client = openai.OpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.timeout_seconds,
                max_retries=0,
            )
        self.client = client

    def embed_text(self, text: str) -> List[float]:
        kwargs = {"model": self.config.model, "input": text}
        # Only the v3 models accept a dimensions override
        if self.config.model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self.config.dimensions

        try:
            response = self.client.embeddings.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"Embedding call failed: {e}")
            raise _provider_error(self.name, e) from e

        if not response.data:
            raise ProviderError(self.name, "response contained no embedding")
        return list(response.data[0].embedding)


def build_completion_provider(config: CompletionConfig) -> OpenAICompletionProvider:
    """Resolve the completion endpoint once, at startup."""
    logger.info(f"Completion provider: model={config.model} endpoint={config.base_url or 'default'}")
    return OpenAICompletionProvider(config)


def build_embedding_provider(config: EmbeddingConfig) -> OpenAIEmbeddingProvider:
    """Resolve the embedding endpoint once, at startup."""
    logger.info(f"Embedding provider: model={config.model} endpoint={config.base_url or 'default'}")
    return OpenAIEmbeddingProvider(config)
