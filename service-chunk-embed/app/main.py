"""Chunk-embed service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from .api.routes import router as api_router
from .encoders.embedding_manager import EmbeddingManager
from .pipelines.markdown_pipeline import MarkdownEmbeddingPipeline
from .runtime.metrics import get_metrics_collector
from .segmentation.client import SegmentationClient, SegmentationSettings
from libs.common.config import ChunkEmbedConfig
from libs.common.logging import configure_logging

SERVICE_NAME = "chunk-embed-service"

logger = structlog.get_logger("chunk_embed_service")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    config = ChunkEmbedConfig()
    configure_logging(SERVICE_NAME, config.ce_log_level, config.ce_log_format)
    app.state.config = config
    app.state.startup_time = time.time()

    logger.info("Starting chunk-embed service")

    metrics_collector = get_metrics_collector(SERVICE_NAME)
    app.state.metrics_collector = metrics_collector

    embedding_manager = EmbeddingManager.from_config(config, metrics_collector=metrics_collector)
    await embedding_manager.initialize()
    app.state.embedding_manager = embedding_manager

    segmentation_client = SegmentationClient(
        SegmentationSettings.from_config(config),
        metrics_collector=metrics_collector
    )
    await segmentation_client.initialize()
    app.state.segmentation_client = segmentation_client
    if not segmentation_client.has_credential:
        logger.warning("HF_API_KEY is not set; markdown embedding requests will fail")

    app.state.pipeline = MarkdownEmbeddingPipeline(
        segmentation_client,
        embedding_manager,
        metrics_collector=metrics_collector
    )

    logger.info("Chunk-embed service started successfully", host=config.ce_host, port=config.ce_port)

    yield

    # Shutdown
    logger.info("Shutting down chunk-embed service")
    await segmentation_client.close()
    await embedding_manager.cleanup()
    logger.info("Chunk-embed service shutdown complete")


app = FastAPI(
    title="Chunk Embed Service",
    description="Embeds text chunks and LLM-segmented markdown documents",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to responses."""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Collect metrics for HTTP requests."""
    start_time = time.time()
    response = await call_next(request)

    if hasattr(request.app.state, "metrics_collector"):
        request.app.state.metrics_collector.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
            duration=time.time() - start_time
        )

    return response


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    embedding_manager: Optional[EmbeddingManager] = getattr(request.app.state, "embedding_manager", None)
    if embedding_manager is not None and await embedding_manager.health_check():
        return {"status": "healthy", "service": SERVICE_NAME}
    return JSONResponse(
        status_code=503,
        content={"status": "unhealthy", "service": SERVICE_NAME}
    )


@app.get("/metrics")
async def metrics(request: Request):
    """Prometheus metrics endpoint."""
    if hasattr(request.app.state, "metrics_collector"):
        return Response(content=request.app.state.metrics_collector.get_metrics(), media_type="text/plain")
    return Response(content="# No metrics available\n", media_type="text/plain")


@app.get("/live")
async def liveness(request: Request):
    """Liveness probe. Returns quickly if process is responsive."""
    return {
        "status": "alive",
        "service": SERVICE_NAME,
        "uptime_seconds": time.time() - getattr(request.app.state, "startup_time", time.time())
    }


@app.get("/ready")
async def readiness(request: Request):
    """Readiness probe. Validates the embedding provider and pipeline are up."""
    embedding_manager: Optional[EmbeddingManager] = getattr(request.app.state, "embedding_manager", None)
    if embedding_manager is None or not hasattr(request.app.state, "pipeline"):
        error = "Pipeline not initialized"
    elif not await embedding_manager.health_check():
        error = "Embedding provider not loaded"
    else:
        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "model": embedding_manager.model_info()
        }

    logger.error("Readiness probe failed", error=error)
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "service": SERVICE_NAME, "error": error}
    )


@app.get("/resources")
async def resources(request: Request):
    """Describe the embedding model and segmentation backend."""
    embedding_manager: Optional[EmbeddingManager] = getattr(request.app.state, "embedding_manager", None)
    segmentation_client: Optional[SegmentationClient] = getattr(request.app.state, "segmentation_client", None)

    segmentation = None
    if segmentation_client is not None:
        segmentation = {
            "endpoint": segmentation_client.settings.endpoint_url,
            "model": segmentation_client.settings.model,
            "credential_configured": segmentation_client.has_credential,
            "max_attempts": segmentation_client.settings.max_attempts,
        }

    return {
        "service": SERVICE_NAME,
        "embedding_model": embedding_manager.model_info() if embedding_manager else None,
        "segmentation": segmentation,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": SERVICE_NAME,
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "chunk_embed": "/api/v1/chunk-embed",
            "embed_markdown": "/api/v1/embed-markdown",
            "metrics": "/metrics",
            "resources": "/resources"
        },
        "probes": {
            "health": "/health",
            "live": "/live",
            "ready": "/ready"
        }
    }


def run() -> None:
    """Run the service with uvicorn on the configured address."""
    config = ChunkEmbedConfig()
    uvicorn.run(
        "app.main:app",
        host=config.ce_host,
        port=config.ce_port,
        log_level=config.ce_log_level.lower()
    )


if __name__ == "__main__":
    run()
