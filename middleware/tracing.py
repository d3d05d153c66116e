"""
Request tracing middleware.

Each incoming request runs inside an ``http.request`` span, so everything a
handler does (its own spans, its log lines) belongs to one trace per request.
The middleware also generates or extracts a request ID, which is logged with
every record of the request and returned in the X-Request-ID header.
"""

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from telemetry.context import request_id_var

# Header name for request ID
REQUEST_ID_HEADER = "X-Request-ID"

REQUEST_SPAN_NAME = "http.request"


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that wraps each request in a span and tags it with a request ID.

    The request ID is:
    1. Extracted from the X-Request-ID header if present
    2. Generated as a new UUID if not present
    3. Stored in request.state for use by error handlers
    4. Stored in a context variable for use by logging
    5. Added to the response headers

    Requests are traced through the TelemetryHandle stored on
    ``app.state.telemetry``. Without one, requests pass through untraced.
    """

    def __init__(self, app: ASGIApp):
        """
        Initialize the middleware.

        Args:
            app: The ASGI application to wrap
        """
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        """
        Process the request inside a request span.

        Args:
            request: The incoming FastAPI request
            call_next: The next middleware or route handler

        Returns:
            The response with X-Request-ID header added
        """
        request_id = request.headers.get(REQUEST_ID_HEADER)
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        telemetry = getattr(request.app.state, "telemetry", None)
        try:
            if telemetry is None:
                response = await call_next(request)
            else:
                attributes = {
                    "http.method": request.method,
                    "http.target": request.url.path,
                    "request.id": request_id,
                }
                with telemetry.span(REQUEST_SPAN_NAME, attributes=attributes) as span:
                    response = await call_next(request)
                    span.set_attribute("http.status_code", response.status_code)

            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # Reset the context variable to avoid leaking between requests
            request_id_var.reset(token)
