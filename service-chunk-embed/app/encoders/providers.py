"""Embedding providers.

A provider turns a list of strings into one vector per string, in input
order. Providers are long-lived: loaded once at startup and shared by every
concurrent request.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from sentence_transformers import SentenceTransformer
import structlog

logger = structlog.get_logger("chunk_embed_service.providers")


class EmbeddingProvider(ABC):
    """Abstract embedding provider.

    ``embed`` returns an array-like of shape ``(len(texts), dimension)``.
    Implementations must preserve input order.
    """

    name: str = "provider"

    async def load(self) -> None:
        """Load model weights or open connections."""

    async def close(self) -> None:
        """Release resources held by the provider."""

    @abstractmethod
    async def embed(self, texts: List[str]) -> Any:
        """Embed ``texts``; one row per input string."""

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name}


class SentenceTransformerProvider(EmbeddingProvider):
    """Provider backed by a local ``SentenceTransformer`` model.

    ``encode`` is CPU/GPU bound, so it runs in a worker thread and the event
    loop stays free while vectors are computed.
    """

    def __init__(self, model_name: str, batch_size: int = 256):
        self.name = model_name
        self.batch_size = batch_size
        self.model: Optional[SentenceTransformer] = None

    async def load(self) -> None:
        if self.model is not None:
            return
        self.model = await asyncio.to_thread(SentenceTransformer, self.name)
        logger.info(
            "Loaded embedding model",
            model_name=self.name,
            dimension=self.model.get_sentence_embedding_dimension()
        )

    async def embed(self, texts: List[str]) -> Any:
        if self.model is None:
            raise RuntimeError(f"Model {self.name} is not loaded")
        return await asyncio.to_thread(
            self.model.encode,
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            show_progress_bar=False,
        )

    def describe(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"name": self.name, "loaded": self.model is not None}
        if self.model is not None:
            info["dimension"] = self.model.get_sentence_embedding_dimension()
            info["max_length"] = self.model.max_seq_length
        return info


class QueuedEmbeddingProvider(EmbeddingProvider):
    """Serializes access to a provider that is unsafe for concurrent use.

    Requests are put on an ``asyncio.Queue`` and a single consumer task runs
    them one at a time against the wrapped provider, resolving each caller's
    future. Callers wait without blocking the event loop; a caller that is
    cancelled while queued is skipped by the consumer.
    """

    def __init__(self, inner: EmbeddingProvider, max_pending: int = 1024):
        self.inner = inner
        self.name = inner.name
        self._queue: "asyncio.Queue[Tuple[List[str], asyncio.Future]]" = asyncio.Queue(maxsize=max_pending)
        self._consumer: Optional[asyncio.Task] = None

    async def load(self) -> None:
        await self.inner.load()
        self._ensure_consumer()

    async def close(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        self._fail_pending()
        await self.inner.close()

    def _closed_error(self) -> RuntimeError:
        return RuntimeError(f"Provider {self.name} was closed")

    def _fail_pending(self) -> None:
        """Fail every request still queued so no caller waits forever."""
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            if not future.done():
                future.set_exception(self._closed_error())
            self._queue.task_done()

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume())

    async def embed(self, texts: List[str]) -> Any:
        self._ensure_consumer()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((texts, future))
        return await future

    async def _consume(self) -> None:
        while True:
            texts, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                try:
                    result = await self.inner.embed(texts)
                except asyncio.CancelledError:
                    if not future.done():
                        future.set_exception(self._closed_error())
                    raise
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                self._queue.task_done()

    def describe(self) -> Dict[str, Any]:
        info = dict(self.inner.describe())
        info["serialized"] = True
        info["pending_requests"] = self._queue.qsize()
        return info
