"""Embedding providers and manager.

Exports the ``EmbeddingManager`` which invokes the shared provider and keeps
vectors aligned with their inputs. Keep heavy ML imports within
implementation modules to minimize import overhead for unrelated paths.
"""
