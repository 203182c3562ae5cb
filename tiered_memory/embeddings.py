"""
Embeddings provider adapter.

Pluggable interface for generating text embeddings.
Supports OpenAI and local sentence-transformers models.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import openai

from .errors import EmbeddingError
from .retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)

# OpenAI's input limit for embedding models, in characters as a token proxy
DEFAULT_MAX_INPUT_CHARS = 8191


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers. Failures raise EmbeddingError."""

    max_input_chars: int = DEFAULT_MAX_INPUT_CHARS

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the dimensionality of embeddings."""
        pass

    def truncate(self, text: str) -> str:
        return text[:self.max_input_chars]


class OpenAIEmbedding(EmbeddingProvider):
    """OpenAI embedding provider."""

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.model = model
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.retry_config = retry_config or RetryConfig()
        self._client: Optional[openai.AsyncOpenAI] = None

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text using OpenAI."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts using OpenAI."""
        if not texts:
            return []
        inputs = [self.truncate(t) for t in texts]

        try:
            client = self._get_client()
            response = await with_retry(
                lambda: client.embeddings.create(model=self.model, input=inputs),
                operation=f"embeddings ({self.model})",
                config=self.retry_config,
            )
        except (openai.OpenAIError, ConnectionError, TimeoutError) as e:
            raise EmbeddingError(f"Embedding generation failed: {e}") from e

        vectors = [item.embedding for item in sorted(response.data, key=lambda x: x.index)]
        logger.debug(f"Generated {len(vectors)} embedding(s) with {self.model}")
        return vectors

    @property
    def dimensions(self) -> int:
        return self.DIMENSIONS.get(self.model, 1536)


class LocalEmbedding(EmbeddingProvider):
    """Local embedding models via sentence-transformers."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimensions = 384

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers package required for local embeddings. "
                    "Install with: pip install tiered-memory[local]"
                )
            self._model = SentenceTransformer(self.model_name)
            self._dimensions = self._model.get_sentence_embedding_dimension()
        return self._model

    async def embed(self, text: str) -> list[float]:
        """Generate embedding using local model."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts using local model."""
        if not texts:
            return []
        try:
            model = self._get_model()
            embeddings = model.encode([self.truncate(t) for t in texts], convert_to_numpy=True)
        except (ImportError, OSError, RuntimeError, ValueError) as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        return [e.tolist() for e in embeddings]

    @property
    def dimensions(self) -> int:
        return self._dimensions


def get_embedding_provider(model: str = "text-embedding-3-small") -> EmbeddingProvider:
    """
    Factory function to get the appropriate embedding provider.

    Args:
        model: Model identifier. Use 'openai/...' for OpenAI models,
               'local/...' for local models.

    Returns:
        EmbeddingProvider instance
    """
    if model.startswith("local/"):
        return LocalEmbedding(model.replace("local/", "", 1))
    elif model.startswith("openai/"):
        return OpenAIEmbedding(model.replace("openai/", "", 1))
    else:
        return OpenAIEmbedding(model)
