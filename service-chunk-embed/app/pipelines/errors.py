"""Error taxonomy for the chunk-and-embed pipeline.

Every failure the pipeline can surface derives from ``ChunkEmbedError`` and
carries enough information for the API layer to build a response:

- ``kind``: stable error kind name, used as the prefix of the message
- ``detail``: human readable text, including remote-provided error text
- ``retryable``: whether the retry handler may attempt the operation again
- ``status_code``: HTTP status used when the error reaches a caller
"""

from typing import Optional


class ChunkEmbedError(Exception):
    """Base class for pipeline failures."""

    retryable = False
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"


class MissingCredential(ChunkEmbedError):
    """The segmentation credential is not configured."""


class SegmentationError(ChunkEmbedError):
    """Segmentation stage failure. Retried inside the segmentation client."""

    retryable = True
    status_code = 502


class TransportFailure(SegmentationError):
    """Network error or timeout while talking to the segmentation endpoint."""


class RemoteRejection(SegmentationError):
    """The segmentation endpoint answered with a non-success status."""

    def __init__(self, status: int, body: str, retryable: Optional[bool] = None):
        super().__init__(f"API request failed with status {status}: {body}")
        self.status = status
        self.body = body
        if retryable is not None:
            self.retryable = retryable


class MalformedResponse(SegmentationError):
    """The response body does not have the chat-completion shape."""


class NoCompletionChoice(SegmentationError):
    """The response contained no completion choices."""


class EmbeddingProviderFailure(ChunkEmbedError):
    """The embedding provider failed or returned misaligned output."""
