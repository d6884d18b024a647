"""Per-client request throttling for the model-backed endpoints."""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def client_address(request: Request) -> str:
    """Address of the calling client, honouring the reverse proxy headers."""
    forwarded = request.headers.get("x-real-ip") or request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return get_remote_address(request) or "anonymous"


limiter = Limiter(key_func=client_address)
