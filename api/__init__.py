"""
HTTP API for the demo service.

The handlers are mock business logic. Each runs inside a span and logs
through a trace-correlated logger so that logs and traces can be joined.
"""

from api.routes import router

__all__ = ["router"]
