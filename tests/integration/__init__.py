"""Integration tests that talk to live external services."""
