"""ASGI middleware for the Perceo setup API.

``_request_id_var`` is the single source of truth for the current request
ID; the logging processor reads it.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# IDs are echoed into logs and response headers
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

SETUP_PATH_PREFIX = "/api/github/"


def get_request_id() -> str:
    """Return the current request's ID, or an empty string outside a request."""
    return _request_id_var.get()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Read or generate X-Request-ID and expose it for the request lifetime.

    The CLI forwards its own X-Request-ID when it calls configure-repo, so
    a failed setup can be traced from the terminal to the server logs. A
    supplied ID that is not a short token is replaced with a fresh UUID.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        supplied = request.headers.get("X-Request-ID", "")
        request_id = supplied if _REQUEST_ID_RE.match(supplied) else str(uuid.uuid4())

        token = _request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security-related headers to every outgoing response.

    Setup responses carry install URLs with a state token or redirect with
    an installation id, so they are also marked uncacheable.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-XSS-Protection"] = "0"
        if request.url.path.startswith(SETUP_PATH_PREFIX):
            response.headers["Cache-Control"] = "no-store"
        return response
