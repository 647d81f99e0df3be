"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request


def _get_client_key(request: Request) -> str:
    """Key requests by the caller IP, honouring the reverse proxy headers."""
    return (
        request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        or request.headers.get("X-Real-IP")
        or (request.client.host if request.client else "127.0.0.1")
    )


limiter = Limiter(key_func=_get_client_key, headers_enabled=False)
