"""
Shared utilities for permissions-gate.

This package aggregates common building blocks consumed by the core:

- config: Library configuration via pydantic-settings
- logging: Structured logging with evaluation correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Cross-cutting logic should live here to avoid import cycles. Do not
import from permissions_gate into gate_common.
"""
