"""
Shared utilities for the condition engine.

This package aggregates the common building blocks consumed by the engine:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with evaluation correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- test_helpers: Test data factories and metrics helpers

Cross-cutting logic should live here to avoid import cycles. Do not import
from condition_engine into shared/.
"""
