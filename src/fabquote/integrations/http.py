from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fabquote.context import get_request_context


@dataclass(frozen=True)
class OutboundHeaders:
    request_id: Optional[str]
    user_id: Optional[str]
    authorization: Optional[str]

    def as_dict(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.request_id:
            headers["x-request-id"] = self.request_id
        if self.user_id:
            headers["x-user-id"] = self.user_id
        if self.authorization:
            headers["Authorization"] = self.authorization
        return headers


def build_outbound_headers(*, authorization: Optional[str] = None) -> OutboundHeaders:
    ctx = get_request_context()
    return OutboundHeaders(
        request_id=ctx.request_id,
        user_id=ctx.user_id,
        authorization=authorization,
    )


def resolve_bearer(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    token = token.strip()
    if not token:
        return None
    if token.lower().startswith("bearer "):
        return token
    return f"Bearer {token}"
