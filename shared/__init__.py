"""
Shared utilities for the Feed Access Layer.

This package aggregates common building blocks consumed by the feed
access package:

- config: Layer configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- test_helpers: Record factories and an in-memory content service

Only test_helpers imports from feed_access.
"""
