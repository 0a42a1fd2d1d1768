"""FastAPI dependencies for Kipu routes."""

from __future__ import annotations

from fastapi import Request

from kipu.endpoint import CountEndpoint


def get_count_endpoint(request: Request) -> CountEndpoint:
    """The endpoint is built per app; it keeps no per-request state."""
    return request.app.state.count_endpoint
