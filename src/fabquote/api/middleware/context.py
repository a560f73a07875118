from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from fabquote.context import request_id_var, user_email_var, user_id_var


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Expose request id and acting user (set by the upstream auth proxy) to services."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        tokens = [
            (request_id_var, request_id_var.set(request_id)),
            (user_id_var, user_id_var.set(request.headers.get("x-user-id"))),
            (user_email_var, user_email_var.set(request.headers.get("x-user-email"))),
        ]
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response
        finally:
            for var, token in reversed(tokens):
                var.reset(token)
