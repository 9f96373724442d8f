"""Request/response logging middleware"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 5.0
QUIET_PATHS = ("/health/live",)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per completed request and sets X-Process-Time"""

    def __init__(self, app, slow_request_seconds: float = SLOW_REQUEST_SECONDS):
        super().__init__(app)
        self.slow_request_seconds = slow_request_seconds

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        response: Response = await call_next(request)
        process_time = time.perf_counter() - start_time

        response.headers["X-Process-Time"] = str(round(process_time, 4))
        if request.url.path not in QUIET_PATHS:
            self._log_response(request, response, process_time)
        return response

    def _log_response(self, request: Request, response: Response, process_time: float) -> None:
        context = {
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "process_time": round(process_time, 4),
            "client_host": request.client.host if request.client else None,
        }
        logger.info("Request completed", extra=context)

        if process_time > self.slow_request_seconds:
            logger.warning("Slow request detected", extra=context)
