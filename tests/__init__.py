"""Tests for the chunk-embed service.

Unit tests run against stub providers and a mock segmentation transport.
Tests marked ``integration`` call live external services and are skipped
when credentials are absent.
"""
