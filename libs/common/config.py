"""Configuration management for the chunk-embed service.

This module centralizes environment-driven configuration. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- One place to discover the environment variables the service reads
- The segmentation credential is read once here, at process start, and
  handed to the segmentation client explicitly

Usage
- Inject the config in the service entrypoint: ``config = ChunkEmbedConfig()``
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SEGMENTATION_MODEL = "meta-llama/Llama-3.3-70B-Instruct"
DEFAULT_SEGMENTATION_URL = (
    "https://api-inference.huggingface.co/models/"
    f"{DEFAULT_SEGMENTATION_MODEL}/v1/chat/completions"
)


class BaseConfig(BaseSettings):
    """Base configuration shared by every process in the repository.

    Field names double as environment variable names (case-insensitive),
    e.g. ``ce_log_level`` is read from ``CE_LOG_LEVEL``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    ce_log_level: str = Field(default="INFO")
    ce_log_format: str = Field(default="json")

    # Network
    ce_host: str = Field(default="0.0.0.0")


class ChunkEmbedConfig(BaseConfig):
    """Configuration for the chunk-embed service.

    Groups the embedding model knobs, the external segmentation endpoint and
    the retry policy applied to segmentation calls.
    """

    ce_port: int = Field(default=50051)

    # Embedding provider
    ce_embedding_model: str = Field(default="BAAI/bge-small-en-v1.5")
    ce_embedding_batch_size: int = Field(default=256, gt=0)
    ce_embedding_serialize: bool = Field(default=True)

    # Segmentation endpoint
    hf_api_key: Optional[str] = Field(default=None)
    ce_segmentation_url: str = Field(default=DEFAULT_SEGMENTATION_URL)
    ce_segmentation_model: str = Field(default=DEFAULT_SEGMENTATION_MODEL)
    ce_segmentation_temperature: float = Field(default=0.7)
    ce_segmentation_timeout: float = Field(default=30.0, gt=0)

    # Segmentation retry policy
    ce_segmentation_max_attempts: int = Field(default=3, ge=1)
    ce_segmentation_base_delay: float = Field(default=0.1, ge=0)
    ce_segmentation_backoff_multiplier: float = Field(default=2.0, ge=1)
    ce_segmentation_fail_fast_on_permanent: bool = Field(default=True)
