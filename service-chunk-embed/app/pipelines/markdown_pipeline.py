"""Chunk-and-embed pipeline.

Coordinates one request end to end: markdown is segmented by the external
LLM endpoint, the resulting chunks are embedded, and chunks and vectors are
paired by position. Segmentation always completes before embedding starts,
and a failure in either stage fails the whole call.
"""

import time
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import structlog

from libs.common.logging import log_performance
from ..encoders.embedding_manager import EmbeddingManager
from ..segmentation.client import SegmentationClient
from .errors import ChunkEmbedError, EmbeddingProviderFailure

logger = structlog.get_logger("chunk_embed_service.pipeline")


@dataclass(frozen=True)
class PipelineResult:
    """Chunks and their embeddings, aligned by index."""

    chunks: List[str]
    embeddings: List[List[float]]

    def __post_init__(self):
        if len(self.chunks) != len(self.embeddings):
            raise EmbeddingProviderFailure(
                f"{len(self.embeddings)} embeddings for {len(self.chunks)} chunks"
            )

    def __len__(self) -> int:
        return len(self.chunks)

    def items(self) -> Iterator[Tuple[str, List[float]]]:
        return zip(self.chunks, self.embeddings)


def flatten(embeddings: Sequence[Sequence[float]]) -> List[float]:
    """Concatenate vectors in order: ``embedding_0 + embedding_1 + ...``."""
    return [value for vector in embeddings for value in vector]


class MarkdownEmbeddingPipeline:
    """Per-request coordinator for the two embedding operations.

    Holds no per-request state; a single instance serves all concurrent
    requests.
    """

    def __init__(
        self,
        segmentation_client: SegmentationClient,
        embedding_manager: EmbeddingManager,
        metrics_collector=None
    ):
        self.segmentation_client = segmentation_client
        self.embedding_manager = embedding_manager
        self.metrics_collector = metrics_collector

    async def embed_chunks(self, chunks: Sequence[str]) -> List[List[float]]:
        """Embed pre-chunked text. One vector per chunk, in order."""
        try:
            embeddings = await self.embedding_manager.embed(chunks)
        except ChunkEmbedError as e:
            self._record("embed_chunks", e.kind)
            raise
        self._record("embed_chunks", "success")
        return embeddings

    async def embed_markdown(self, markdown: str, api_key: Optional[str] = None) -> PipelineResult:
        """Segment ``markdown`` and embed each chunk.

        Raises the segmentation error (no embedding attempted) or the
        embedding error; partial results are never returned.
        """
        start_time = time.time()

        try:
            chunks = await self.segmentation_client.segment(markdown, api_key=api_key)
            embeddings = await self.embedding_manager.embed(chunks)
            result = PipelineResult(chunks=chunks, embeddings=embeddings)
        except ChunkEmbedError as e:
            self._record("embed_markdown", e.kind)
            logger.warning(
                "Markdown pipeline failed",
                error_kind=e.kind,
                error=e.detail,
                document_length=len(markdown)
            )
            raise

        self._record("embed_markdown", "success", chunk_count=len(result))
        log_performance(
            "embed_markdown",
            (time.time() - start_time) * 1000,
            chunk_count=len(result),
            document_length=len(markdown)
        )
        return result

    def _record(self, operation: str, outcome: str, chunk_count: Optional[int] = None) -> None:
        if self.metrics_collector is not None:
            self.metrics_collector.record_pipeline(operation, outcome, chunk_count=chunk_count)
