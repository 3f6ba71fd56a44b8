"""Tests for common utilities."""

import pytest
from prometheus_client import CollectorRegistry

from libs.common.config import BaseConfig, ChunkEmbedConfig, DEFAULT_SEGMENTATION_URL
from libs.common.logging import configure_logging, get_logger
from libs.common.metrics import MetricsCollector, get_metrics_collector


def test_config_loading():
    """Test configuration loading."""
    config = BaseConfig(_env_file=None)
    assert config.ce_host == "0.0.0.0"
    assert config.ce_log_level == "INFO"
    assert config.ce_log_format == "json"


def test_chunk_embed_config_defaults(monkeypatch):
    """Test chunk-embed configuration defaults."""
    monkeypatch.delenv("HF_API_KEY", raising=False)
    config = ChunkEmbedConfig(_env_file=None)
    assert config.ce_port == 50051
    assert config.hf_api_key is None
    assert config.ce_segmentation_url == DEFAULT_SEGMENTATION_URL
    assert config.ce_segmentation_timeout == 30.0
    assert config.ce_segmentation_max_attempts == 3
    assert config.ce_segmentation_base_delay == pytest.approx(0.1)
    assert config.ce_segmentation_backoff_multiplier == pytest.approx(2.0)


def test_config_reads_environment(monkeypatch):
    """Environment variables override defaults, case-insensitively."""
    monkeypatch.setenv("HF_API_KEY", "secret")
    monkeypatch.setenv("CE_EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
    monkeypatch.setenv("ce_embedding_serialize", "false")
    config = ChunkEmbedConfig(_env_file=None)
    assert config.hf_api_key == "secret"
    assert config.ce_embedding_model == "sentence-transformers/all-MiniLM-L6-v2"
    assert config.ce_embedding_serialize is False


def test_config_rejects_invalid_attempts():
    with pytest.raises(ValueError):
        ChunkEmbedConfig(_env_file=None, ce_segmentation_max_attempts=0)


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    get_logger("test").info("configured", answer=42)


def test_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        configure_logging("test-service", "LOUD", "json")


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service", registry=CollectorRegistry())
    assert collector.service_name == "test-service"

    collector.record_http_request("POST", "/api/v1/chunk-embed", 200, 0.1)
    collector.record_embedding("stub", "success", 0.05)
    collector.record_segmentation_attempt("success", 0.2)
    collector.record_pipeline("embed_markdown", "success", chunk_count=3)

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "http_requests_total" in metrics
    assert 'ce_pipeline_requests_total{operation="embed_markdown",outcome="success"} 1.0' in metrics
    assert "ce_chunks_per_document_count 1.0" in metrics


def test_metrics_collector_singleton():
    assert get_metrics_collector("svc") is get_metrics_collector("svc")
