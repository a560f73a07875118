from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
user_email_var: ContextVar[Optional[str]] = ContextVar("user_email", default=None)


@dataclass(frozen=True)
class RequestContext:
    request_id: Optional[str]
    user_id: Optional[str]
    user_email: Optional[str]


def get_request_context() -> RequestContext:
    return RequestContext(
        request_id=request_id_var.get(),
        user_id=user_id_var.get(),
        user_email=user_email_var.get(),
    )
