import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .logging import request_id_var

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller, passed explicitly into every service call."""

    user_id: str
    role: str = "user"
    request_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def assign_request_id(request: Request) -> str:
    """Adopt the caller's request/correlation id or mint one, and expose it to logging."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    request_id_var.set(request_id)
    return request_id


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
