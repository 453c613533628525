from __future__ import annotations

import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storefront.core.logging import get_logger, log_context
from storefront.core.metrics import normalize_path, record_request_metrics

REQUEST_ID_HEADER = "X-Request-ID"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Time every request, tag it with a request id and log failed responses."""

    def __init__(self, app, *, log_client_errors: bool = True) -> None:
        super().__init__(app)
        self.logger = get_logger("storefront.requests")
        self.log_client_errors = log_client_errors

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            with log_context(
                request_id=request_id,
                user_id=request.headers.get("x-user-id"),
                session_id=request.headers.get("x-session-id"),
            ):
                response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - start
            record_request_metrics(request, 500, elapsed)
            self._log(request, request_id, 500, elapsed, "Unhandled server error", "error")
            raise

        elapsed = time.perf_counter() - start
        record_request_metrics(request, response.status_code, elapsed)
        response.headers[REQUEST_ID_HEADER] = request_id

        if response.status_code >= 500:
            self._log(request, request_id, response.status_code, elapsed, "Server error response", "error")
        elif response.status_code >= 400 and self.log_client_errors:
            self._log(request, request_id, response.status_code, elapsed, "Client error response", "warning")
        return response

    def _log(
        self,
        request: Request,
        request_id: str,
        status_code: int,
        elapsed: float,
        message: str,
        level: str,
    ) -> None:
        payload: dict[str, Any] = {
            "method": request.method,
            "path": normalize_path(request),
            "status_code": status_code,
            "duration_ms": round(elapsed * 1000, 3),
            "request_id": request_id,
            "user_id": request.headers.get("x-user-id"),
            "session_id": request.headers.get("x-session-id"),
        }
        getattr(self.logger, level, self.logger.error)(message, extra=payload)
