"""Markdown segmentation via an external chat-completion endpoint."""
