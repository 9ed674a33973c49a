"""
Shared utilities for the content proxy.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and the JSON error envelope
- base_service: FastAPI application skeleton

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service packages into shared/.
"""
