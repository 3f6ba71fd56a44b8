"""Chunk-embed service package.

Layout:
- ``api``: FastAPI route handlers and request/response models.
- ``segmentation``: client for the external markdown segmentation endpoint.
- ``encoders``: embedding providers and the ``EmbeddingManager``.
- ``pipelines``: retry handling, error taxonomy and the chunk-and-embed pipeline.
- ``runtime``: service-local metrics helpers.

Import convenience:
- from app.pipelines.markdown_pipeline import MarkdownEmbeddingPipeline
"""
