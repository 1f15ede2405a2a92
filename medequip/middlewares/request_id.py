from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("medequip.request")

# Health checks and scrapes would drown out the booking traffic.
QUIET_PATHS = frozenset({"/health", "/metrics"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate each request with an id and write one access record per request.

    The endpoint runs in a separate task, so the admin principal is read back
    from ``request.state`` rather than from the context var.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = request_id
        request.state.principal = None
        id_token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers[self.header_name] = request_id
            response.headers.setdefault("X-Response-Time", f"{elapsed_ms:.2f}ms")
            if request.url.path not in QUIET_PATHS:
                self._log(request, response.status_code, elapsed_ms)
        finally:
            request_id_ctx_var.reset(id_token)
        return response

    def _log(self, request: Request, status_code: int, elapsed_ms: float) -> None:
        fields = {
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "duration_ms": elapsed_ms,
        }
        principal = getattr(request.state, "principal", None)
        if principal:
            fields["principal"] = principal
        level = logging.WARNING if status_code >= 500 else logging.INFO
        logger.log(level, "request.completed", extra={"extra_data": fields})
