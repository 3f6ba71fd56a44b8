"""Shared fixtures for chunk-embed tests.

Provides: a deterministic embedding provider, a mock chat-completion
transport, and a recording sleep so retry schedules run instantly.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from app.encoders.embedding_manager import EmbeddingManager
from app.encoders.providers import EmbeddingProvider
from app.pipelines.markdown_pipeline import MarkdownEmbeddingPipeline
from app.pipelines.retry_handler import RetryHandler
from app.segmentation.client import SegmentationClient, SegmentationSettings
from libs.common.metrics import MetricsCollector

TEST_ENDPOINT = "https://segmentation.test/v1/chat/completions"
TEST_API_KEY = "hf_test_key"


class StubProvider(EmbeddingProvider):
    """Returns one vector per text: ``[index, len(text)]`` unless overridden."""

    name = "stub-model"

    def __init__(self, vectors: Optional[List[List[float]]] = None, error: Optional[Exception] = None):
        self.vectors = vectors
        self.error = error
        self.calls: List[List[str]] = []
        self.loaded = False

    async def load(self) -> None:
        self.loaded = True

    async def embed(self, texts: List[str]) -> Any:
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        if self.vectors is not None:
            return self.vectors
        return [[float(i), float(len(text))] for i, text in enumerate(texts)]


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def completion_body(content: str) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class ScriptedEndpoint:
    """Mock segmentation endpoint replaying a list of responses in order.

    Each entry is an ``httpx.Response``, an exception to raise, or a callable
    receiving the request. The last entry repeats once the script runs out.
    """

    def __init__(self, script: List[Any]):
        self.script = script
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script[min(len(self.requests), len(self.script)) - 1]
        if isinstance(step, Exception):
            raise step
        if callable(step) and not isinstance(step, httpx.Response):
            return step(request)
        return step

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def metrics_collector() -> MetricsCollector:
    return MetricsCollector("test-service")


@pytest.fixture()
def make_segmentation_client(recording_sleep, metrics_collector) -> Callable[..., SegmentationClient]:
    """Factory building a ``SegmentationClient`` around a scripted endpoint."""

    def factory(endpoint: ScriptedEndpoint, **overrides: Any) -> SegmentationClient:
        settings_kwargs = {
            "endpoint_url": TEST_ENDPOINT,
            "model": "test-model",
            "api_key": TEST_API_KEY,
        }
        settings_kwargs.update(overrides)
        settings = SegmentationSettings(**settings_kwargs)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
        return SegmentationClient(
            settings,
            http_client=http_client,
            retry_handler=RetryHandler(settings.retry_config(), sleep=recording_sleep),
            metrics_collector=metrics_collector,
        )

    return factory


@pytest.fixture()
def make_pipeline(make_segmentation_client, metrics_collector) -> Callable[..., MarkdownEmbeddingPipeline]:
    """Factory building a pipeline from a scripted endpoint and a stub provider."""

    def factory(endpoint: ScriptedEndpoint, provider: Optional[StubProvider] = None, **overrides: Any):
        manager = EmbeddingManager(provider or StubProvider(), metrics_collector=metrics_collector)
        return MarkdownEmbeddingPipeline(
            make_segmentation_client(endpoint, **overrides),
            manager,
            metrics_collector=metrics_collector,
        )

    return factory
