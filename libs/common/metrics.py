"""Metrics collection for the chunk-embed service.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service records HTTP, embedding, segmentation and pipeline metrics with
consistent label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for tests)
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'ce_embedding_requests_total',
            'Total embedding provider invocations',
            ['model_name', 'status'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'ce_embedding_duration_seconds',
            'Embedding provider invocation duration',
            ['model_name'],
            registry=self.registry
        )

        self.segmentation_attempts = Counter(
            'ce_segmentation_attempts_total',
            'Segmentation endpoint attempts partitioned by outcome',
            ['outcome'],
            registry=self.registry
        )

        self.segmentation_duration = Histogram(
            'ce_segmentation_duration_seconds',
            'Segmentation endpoint round-trip duration per attempt',
            registry=self.registry
        )

        self.pipeline_requests = Counter(
            'ce_pipeline_requests_total',
            'Pipeline invocations partitioned by operation and outcome',
            ['operation', 'outcome'],
            registry=self.registry
        )

        self.chunks_produced = Histogram(
            'ce_chunks_per_document',
            'Number of chunks produced per segmented document',
            buckets=(1, 2, 4, 8, 16, 32, 64, 128),
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_embedding(self, model_name: str, status: str, duration: float) -> None:
        """Record one embedding provider invocation."""
        self.embedding_requests.labels(model_name=model_name, status=status).inc()
        self.embedding_duration.labels(model_name=model_name).observe(duration)

    def record_segmentation_attempt(self, outcome: str, duration: float) -> None:
        """Record one segmentation round trip (``success`` or an error kind)."""
        self.segmentation_attempts.labels(outcome=outcome).inc()
        self.segmentation_duration.observe(duration)

    def record_pipeline(self, operation: str, outcome: str, chunk_count: Optional[int] = None) -> None:
        """Record a pipeline outcome and, for segmented documents, the chunk count."""
        self.pipeline_requests.labels(operation=operation, outcome=outcome).inc()
        if chunk_count is not None:
            self.chunks_produced.observe(chunk_count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the process-wide metrics collector.

    Returns a singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
        logger.debug("Metrics collector created", service=service_name)
    return _metrics_collector
