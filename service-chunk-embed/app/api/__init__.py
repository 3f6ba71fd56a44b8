"""API subpackage for the chunk-embed service.

Contains the FastAPI router exposing:
- Embedding of pre-chunked text (``/chunk-embed``)
- Segmentation and embedding of markdown documents (``/embed-markdown``)
"""
