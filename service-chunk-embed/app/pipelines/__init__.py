"""Embedding processing pipelines.

The modules in this package orchestrate the chunk-and-embed workflow:
segmentation of markdown through an external LLM, embedding of the resulting
chunks, and positional pairing of chunks with vectors. Transient
segmentation failures are handled with retry/backoff.
"""
