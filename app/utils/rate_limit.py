"""
Rate limiting for the file API.
Uses slowapi so a runaway client cannot flood the storage provider with uploads.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request


def get_client_identifier(request: Request) -> str:
    """
    Client key for rate limiting: first X-Forwarded-For hop when behind a
    proxy, otherwise the socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_identifier,
    storage_uri="memory://"
)
