"""
Caller context middleware.

Stamps the calling context id (X-Context-Id header) on request.state so
routes can log which surface or page sent a message.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

CONTEXT_HEADER = "X-Context-Id"
DEFAULT_CALLER = "surface"


class CallerContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.caller_context_id = request.headers.get(CONTEXT_HEADER) or DEFAULT_CALLER
        response = await call_next(request)
        response.headers[CONTEXT_HEADER] = request.state.caller_context_id
        return response
