"""Markdown segmentation through an external chat-completion endpoint.

The client asks a hosted LLM to split a markdown document into logical
sections separated by a literal ``---`` line, then turns the completion text
into an ordered list of non-empty chunks. The whole HTTP round trip,
including response parsing, is retried with exponential backoff.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError
import structlog

from libs.common.config import ChunkEmbedConfig
from ..pipelines.errors import (
    MalformedResponse,
    MissingCredential,
    NoCompletionChoice,
    RemoteRejection,
    SegmentationError,
    TransportFailure,
)
from ..pipelines.retry_handler import RetryConfig, RetryHandler

logger = structlog.get_logger("chunk_embed_service.segmentation")

SECTION_DELIMITER = "---"

SYSTEM_PROMPT = (
    "You are a helpful assistant that chunks markdown content into logical "
    "sections. Each chunk should be a complete thought or section."
)

USER_PROMPT_TEMPLATE = (
    "Please chunk the following markdown into logical sections. "
    "Separate each section with '---':\n\n{markdown}"
)

# Statuses that signal a transient condition on the remote side.
RETRYABLE_STATUSES = frozenset({408, 429})


class ChatMessage(BaseModel):
    role: str = "assistant"
    content: str


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatCompletionResponse(BaseModel):
    """The subset of a chat-completion response the client relies on."""
    choices: List[ChatChoice]


@dataclass(frozen=True)
class SegmentationSettings:
    """Immutable settings for ``SegmentationClient``.

    Built once at process start so the credential is looked up a single
    time and the dependency is visible in the client's constructor.
    """

    endpoint_url: str
    model: str
    api_key: Optional[str] = None
    temperature: float = 0.7
    timeout: float = 30.0
    max_attempts: int = 3
    base_delay: float = 0.1
    backoff_multiplier: float = 2.0
    fail_fast_on_permanent: bool = True

    @classmethod
    def from_config(cls, config: ChunkEmbedConfig) -> "SegmentationSettings":
        return cls(
            endpoint_url=config.ce_segmentation_url,
            model=config.ce_segmentation_model,
            api_key=config.hf_api_key or None,
            temperature=config.ce_segmentation_temperature,
            timeout=config.ce_segmentation_timeout,
            max_attempts=config.ce_segmentation_max_attempts,
            base_delay=config.ce_segmentation_base_delay,
            backoff_multiplier=config.ce_segmentation_backoff_multiplier,
            fail_fast_on_permanent=config.ce_segmentation_fail_fast_on_permanent,
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            exponential_base=self.backoff_multiplier,
            jitter=False,
            retryable_exceptions=(SegmentationError,),
            respect_retryable_flag=self.fail_fast_on_permanent,
        )


def build_request(markdown: str, model: str, temperature: float) -> Dict[str, Any]:
    """Build the chat-completion payload for one document."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": USER_PROMPT_TEMPLATE.format(markdown=markdown)},
        ],
        "temperature": temperature,
    }


def split_sections(content: str) -> List[str]:
    """Split completion text into trimmed, non-empty chunks in order.

    When the text holds no non-empty section (for example no delimiter
    survived, or only delimiters came back) the whole trimmed text becomes
    the single chunk. Blank text cannot form a chunk: instead of passing it
    through as an empty fallback chunk it is rejected as
    ``MalformedResponse``, so the request is retried.
    """
    chunks = [part.strip() for part in content.split(SECTION_DELIMITER)]
    chunks = [chunk for chunk in chunks if chunk]
    if chunks:
        return chunks

    fallback = content.strip()
    if not fallback:
        raise MalformedResponse("Completion content is empty")
    return [fallback]


def parse_completion(body: Any) -> List[str]:
    """Validate a decoded response body and return its chunks."""
    try:
        completion = ChatCompletionResponse.model_validate(body)
    except ValidationError as e:
        raise MalformedResponse(f"Unexpected response structure: {e.error_count()} validation error(s)") from e

    if not completion.choices:
        raise NoCompletionChoice("No choices in response")

    return split_sections(completion.choices[0].message.content)


class SegmentationClient:
    """Client for the external markdown segmentation endpoint.

    Parameters
    - settings: ``SegmentationSettings`` with endpoint, model and credential
    - http_client: Optional pre-built ``httpx.AsyncClient`` (tests inject one
      with a mock transport); otherwise one is created on ``initialize``
    - retry_handler: Optional ``RetryHandler``; defaults to one built from
      the settings
    - metrics_collector: Optional collector for per-attempt metrics
    """

    def __init__(
        self,
        settings: SegmentationSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_handler: Optional[RetryHandler] = None,
        metrics_collector=None
    ):
        self.settings = settings
        self.http_client = http_client
        self._owns_client = http_client is None
        self.retry_handler = retry_handler or RetryHandler(settings.retry_config())
        self.metrics_collector = metrics_collector

    @property
    def has_credential(self) -> bool:
        return bool(self.settings.api_key)

    async def initialize(self) -> None:
        """Create the HTTP client if none was injected."""
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=self.settings.timeout)
            self._owns_client = True
        logger.info(
            "Segmentation client initialized",
            endpoint=self.settings.endpoint_url,
            model=self.settings.model,
            credential_configured=self.has_credential
        )

    async def close(self) -> None:
        if self.http_client is not None and self._owns_client:
            await self.http_client.aclose()
            self.http_client = None

    async def segment(self, markdown: str, api_key: Optional[str] = None) -> List[str]:
        """Split ``markdown`` into ordered chunks.

        ``api_key`` overrides the configured credential for this call. Raises
        ``MissingCredential`` before any network activity when no credential
        is available, and a ``SegmentationError`` once retries are exhausted.
        """
        key = api_key or self.settings.api_key
        if not key:
            raise MissingCredential("HF_API_KEY must be set to segment markdown")

        if self.http_client is None:
            await self.initialize()

        chunks = await self.retry_handler.execute_with_retry(
            self._request_chunks,
            markdown,
            key,
            operation_name="segment_markdown"
        )

        logger.info(
            "Markdown segmented",
            document_length=len(markdown),
            chunk_count=len(chunks)
        )
        return chunks

    async def _request_chunks(self, markdown: str, api_key: str) -> List[str]:
        """Perform one request/response round trip."""
        start_time = time.time()
        try:
            chunks = await self._send(markdown, api_key)
        except SegmentationError as e:
            self._record_attempt(e.kind, start_time)
            raise
        self._record_attempt("success", start_time)
        return chunks

    async def _send(self, markdown: str, api_key: str) -> List[str]:
        payload = build_request(markdown, self.settings.model, self.settings.temperature)
        headers = {"Authorization": f"Bearer {api_key}"}

        try:
            response = await self.http_client.post(
                self.settings.endpoint_url,
                json=payload,
                headers=headers,
                timeout=self.settings.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportFailure(f"Request timed out: {e}") from e
        except httpx.DecodingError as e:
            raise MalformedResponse(f"Response body could not be decoded: {e}") from e
        except httpx.RequestError as e:
            raise TransportFailure(f"Request failed: {e}") from e

        if not response.is_success:
            status = response.status_code
            raise RemoteRejection(
                status,
                response.text,
                retryable=status >= 500 or status in RETRYABLE_STATUSES,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponse(f"Response body is not valid JSON: {e}") from e

        return parse_completion(body)

    def _record_attempt(self, outcome: str, start_time: float) -> None:
        if self.metrics_collector is not None:
            self.metrics_collector.record_segmentation_attempt(outcome, time.time() - start_time)
