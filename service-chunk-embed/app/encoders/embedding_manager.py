"""Embedding manager for provider lifecycle and vector generation.

Owns the process-wide embedding provider, converts its output to 32-bit
floats and guarantees that the i-th vector returned belongs to the i-th
input string.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import structlog

from libs.common.config import ChunkEmbedConfig
from ..pipelines.errors import EmbeddingProviderFailure
from .providers import EmbeddingProvider, QueuedEmbeddingProvider, SentenceTransformerProvider

logger = structlog.get_logger("chunk_embed_service.embedding_manager")


def create_provider(config: ChunkEmbedConfig) -> EmbeddingProvider:
    """Build the configured provider, serialized behind a queue if requested."""
    provider: EmbeddingProvider = SentenceTransformerProvider(
        config.ce_embedding_model,
        batch_size=config.ce_embedding_batch_size
    )
    if config.ce_embedding_serialize:
        provider = QueuedEmbeddingProvider(provider)
    return provider


class EmbeddingManager:
    """Invokes the embedding provider and normalizes its output.

    Notes
    - The provider is shared read-only across concurrent requests
    - Failures are not retried here; identical input is expected to fail
      identically
    """

    def __init__(self, provider: EmbeddingProvider, metrics_collector=None):
        self.provider = provider
        self.metrics_collector = metrics_collector
        self._initialized = False

    @classmethod
    def from_config(cls, config: ChunkEmbedConfig, metrics_collector=None) -> "EmbeddingManager":
        return cls(create_provider(config), metrics_collector=metrics_collector)

    async def initialize(self) -> None:
        """Load the provider."""
        try:
            await self.provider.load()
            self._initialized = True
            logger.info("Embedding manager initialized successfully", provider=self.provider.name)
        except Exception as e:
            logger.error("Failed to initialize embedding manager", provider=self.provider.name, error=str(e))
            raise

    async def cleanup(self) -> None:
        await self.provider.close()
        self._initialized = False

    async def health_check(self) -> bool:
        return self._initialized

    def model_info(self) -> Dict[str, Any]:
        return self.provider.describe()

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed ``texts`` and return one float32 vector per text, in order.

        Raises ``EmbeddingProviderFailure`` if the provider fails or returns
        a different number of vectors than texts.
        """
        texts = list(texts)
        if not texts:
            return []

        start_time = time.time()
        try:
            raw = await self.provider.embed(texts)
        except Exception as e:
            self._record("failure", start_time)
            logger.error(
                "Embedding provider failed",
                provider=self.provider.name,
                count=len(texts),
                error=str(e)
            )
            raise EmbeddingProviderFailure(f"Embedding error: {e}") from e

        try:
            vectors = self._normalize(raw, expected=len(texts))
        except EmbeddingProviderFailure:
            self._record("failure", start_time)
            raise

        self._record("success", start_time)
        logger.debug(
            "Embeddings generated",
            provider=self.provider.name,
            count=len(vectors),
            dimension=len(vectors[0]) if vectors else 0
        )
        return vectors

    def _normalize(self, raw: Any, expected: int) -> List[List[float]]:
        """Convert provider output to a list of float32 rows."""
        try:
            matrix = np.asarray(raw, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise EmbeddingProviderFailure(f"Provider returned non-numeric output: {e}") from e

        if matrix.ndim != 2:
            raise EmbeddingProviderFailure(
                f"Provider returned output of shape {matrix.shape}, expected 2 dimensions"
            )
        if matrix.shape[0] != expected:
            raise EmbeddingProviderFailure(
                f"Provider returned {matrix.shape[0]} vectors for {expected} inputs"
            )
        return matrix.tolist()

    def _record(self, status: str, start_time: float) -> None:
        if self.metrics_collector is not None:
            self.metrics_collector.record_embedding(self.provider.name, status, time.time() - start_time)
