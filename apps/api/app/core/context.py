import uuid
from dataclasses import dataclass, field

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


@dataclass
class RequestContext:
    """Per-request facts shared by auth, error envelopes and the request span."""

    correlation_id: str
    branch_id: str | None = None
    region_id: str | None = None
    user_id: str | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def get_request_context(request: Request) -> RequestContext | None:
    return getattr(request.state, "context", None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        context = RequestContext(
            correlation_id=getattr(request.state, "correlation_id", None) or "",
            branch_id=request.headers.get("x-branch-id") or None,
            region_id=request.headers.get("x-region-id") or None,
        )
        request.state.context = context
        response = await call_next(request)
        response.headers["x-request-id"] = context.request_id
        return response
