"""Correlation ID middleware for tracing a scrape across logs."""

import uuid
from typing import Callable

import logfire
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

CORRELATION_ID_HEADER = "X-Correlation-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Attach a correlation ID to each request and its response.

    An incoming X-Correlation-ID header is reused so a caller can follow its
    own id through our logs; otherwise a new UUID is generated. The request
    runs inside a Logfire span carrying the id, so every scrape log line
    emitted while handling it is correlated.
    """

    def __init__(self, app: ASGIApp, header_name: str = CORRELATION_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        with logfire.span(
            "{method} {path}",
            method=request.method,
            path=request.url.path,
            correlation_id=correlation_id,
        ):
            response = await call_next(request)

        response.headers[self.header_name] = correlation_id
        return response


def get_correlation_id(request: Request) -> str | None:
    """Correlation ID of the current request, if the middleware ran."""
    return getattr(request.state, "correlation_id", None)
