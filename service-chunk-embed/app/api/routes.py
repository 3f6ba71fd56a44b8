"""API routes for the chunk-embed service."""

import base64
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
import structlog

from ..pipelines.errors import ChunkEmbedError
from ..pipelines.markdown_pipeline import MarkdownEmbeddingPipeline, flatten

logger = structlog.get_logger("chunk_embed_service.api")

router = APIRouter()


class ChunkEmbedRequest(BaseModel):
    """Request model for embedding pre-chunked text."""
    chunks: List[str] = Field(..., description="Chunks to embed, in order")


class ChunkEmbedResponse(BaseModel):
    """Flattened embeddings: ``embedding_0 + embedding_1 + ... + embedding_n``."""
    embeddings: List[float] = Field(..., description="Concatenated embedding vectors")


class EmbedMarkdownRequest(BaseModel):
    """Request model for segmenting and embedding a markdown document."""
    markdown: str = Field(..., description="Markdown source document")


class EmbeddingFromMarkdown(BaseModel):
    """One chunk of the document with its embedding."""
    embedding: List[float] = Field(..., description="Embedding vector for the chunk")
    chunk: str = Field(..., description="Base64 encoding of the UTF-8 chunk bytes")


class EmbedMarkdownResponse(BaseModel):
    """Chunks in segmentation order, each with its embedding."""
    embeddings: List[EmbeddingFromMarkdown] = Field(..., description="Embedded chunks")


def encode_chunk(chunk: str) -> str:
    """Encode chunk text as its UTF-8 bytes, base64 encoded for JSON."""
    return base64.b64encode(chunk.encode("utf-8")).decode("ascii")


def get_pipeline(request: Request) -> MarkdownEmbeddingPipeline:
    """Get the pipeline from application state."""
    return request.app.state.pipeline


def to_http_exception(error: ChunkEmbedError) -> HTTPException:
    """Translate a pipeline error into the transport's error representation."""
    return HTTPException(status_code=error.status_code, detail=str(error))


@router.post("/chunk-embed", response_model=ChunkEmbedResponse)
async def chunk_embed(
    request: ChunkEmbedRequest,
    pipeline: MarkdownEmbeddingPipeline = Depends(get_pipeline)
):
    """Embed pre-chunked text and return the vectors flattened."""
    start_time = time.time()

    try:
        embeddings = await pipeline.embed_chunks(request.chunks)
    except ChunkEmbedError as e:
        logger.error("Chunk embedding failed", error_kind=e.kind, error=e.detail, count=len(request.chunks))
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Unexpected chunk embedding failure", error=str(e))
        raise HTTPException(status_code=500, detail="Internal error during chunk embedding")

    logger.info(
        "Chunks embedded",
        count=len(embeddings),
        latency_ms=(time.time() - start_time) * 1000
    )
    return ChunkEmbedResponse(embeddings=flatten(embeddings))


@router.post("/embed-markdown", response_model=EmbedMarkdownResponse)
async def embed_markdown(
    request: EmbedMarkdownRequest,
    pipeline: MarkdownEmbeddingPipeline = Depends(get_pipeline)
):
    """Segment a markdown document and embed each resulting chunk."""
    start_time = time.time()

    try:
        result = await pipeline.embed_markdown(request.markdown)
    except ChunkEmbedError as e:
        logger.error("Markdown embedding failed", error_kind=e.kind, error=e.detail)
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Unexpected markdown embedding failure", error=str(e))
        raise HTTPException(status_code=500, detail="Internal error during markdown embedding")

    logger.info(
        "Markdown embedded",
        chunk_count=len(result),
        latency_ms=(time.time() - start_time) * 1000
    )
    return EmbedMarkdownResponse(
        embeddings=[
            EmbeddingFromMarkdown(embedding=embedding, chunk=encode_chunk(chunk))
            for chunk, embedding in result.items()
        ]
    )
