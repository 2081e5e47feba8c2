"""Request helpers shared by the routes."""

from uuid import uuid4

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"


def get_request_id(request: Request) -> str | None:
    """Return the request id assigned by the middleware, or the inbound header."""
    return getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)


def new_request_id() -> str:
    return uuid4().hex
