"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

Outermost unit of the global pipeline: times every request, tags it with
a short X-Request-ID and writes one line to the "devhost.access" logger.

    text:  127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET /shop/bundle.js" 200 1832 3.41ms
    json:  {"request_id": "a1b2c3d4", "method": "GET", "path": "/shop/bundle.js", ...}

Live-reload long-polls are noisy (one per open browser tab every few
seconds) so paths ending in the live-reload endpoint are logged at DEBUG.

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger("devhost.access")


@dataclass
class RequestLog:
    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    @classmethod
    def capture(cls, request_id: str, request: HTTPRequest, response: HTTPResponse, started: float) -> "RequestLog":
        pairs = [f"{key}={value}" for key, values in request.query_params.items() for value in values]
        return cls(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query="&".join(pairs),
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def render(self, log_format: str) -> str:
        if log_format == "json":
            return json.dumps(asdict(self))
        return (
            f'{self.client_ip} - - [{self.timestamp}] "{self.method} {self.path}" '
            f'{self.status_code} {self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Args:
        log_format: "text" or "json".
        include_request_id: Add X-Request-ID to every response.
        log_level: Level for ordinary access lines.
        quiet_suffixes: Paths ending in one of these log at DEBUG.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        quiet_suffixes: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.quiet_suffixes = tuple(["/__hmr"] if quiet_suffixes is None else quiet_suffixes)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        started = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.error(f"Request failed: {request.method} {request.path} - {e!r} after {elapsed:.2f}ms")
            raise

        entry = RequestLog.capture(request_id, request, response, started)
        quiet = request.path.endswith(self.quiet_suffixes)
        logger.log(logging.DEBUG if quiet else self.log_level, entry.render(self.log_format))

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id
        return response
