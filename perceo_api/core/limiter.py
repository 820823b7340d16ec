"""SlowAPI rate limiter singleton.

The setup endpoints are called by the CLI and by browsers without an
authenticated session, so limits are keyed on the client address. The
first hop of X-Forwarded-For is used when the API sits behind a proxy.

Usage in route handlers:
    @router.post("/some-endpoint")
    @limiter.limit(_configure_limit)
    async def handler(request: Request, ...):
        ...
"""

from slowapi import Limiter
from starlette.requests import Request


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=_client_key, default_limits=[])
