"""
middleware/logging.py

Per-request access logging. Every request gets a uuid4 request id (echoed
back as X-Request-ID) and one log line with method, path, status, latency
and client identity. Health and docs paths are skipped.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.request_meta import get_client_identity

logger = logging.getLogger(__name__)

_SKIP_LOG_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        if request.url.path in _SKIP_LOG_PATHS:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.time()
        client_ip = get_client_identity(request)
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            latency_ms = round((time.time() - start_time) * 1000, 2)
            logger.error(
                f"{request_id} | {client_ip} | {method} {path} | unhandled error | {latency_ms}ms"
            )
            raise

        latency_ms = round((time.time() - start_time) * 1000, 2)
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            f"{request_id} | {client_ip} | {method} {path} | "
            f"{response.status_code} | {latency_ms}ms"
        )
        response.headers["X-Request-ID"] = request_id
        return response
