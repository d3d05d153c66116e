"""
Middleware components for the demo service.

This module contains FastAPI middleware for cross-cutting concerns
such as request tracing and correlation.
"""

from middleware.tracing import (
    REQUEST_ID_HEADER,
    TracingMiddleware,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "TracingMiddleware",
]
