"""
=============================================================================
LIVE-RELOAD MIDDLEWARE
=============================================================================

Long-poll endpoint that tells a browser tab when its project was rebuilt.

    browser                                   LiveReloadMiddleware
       │  GET /shop/__hmr                            │
       │ ──────────────────────────────────────────► │ answer now
       │ ◄──────────────────── {"hash": "9c1f"}      │
       │  GET /shop/__hmr?hash=9c1f                  │
       │ ──────────────────────────────────────────► │ park on Condition
       │                                  (source saved, rebuild done)
       │ ◄──────────── {"hash": "77ab", "stale": true}
       │  location.reload()

A client whose hash is already stale is answered immediately. A parked
client is answered when the next build finishes or after `timeout`
seconds (same hash, the client simply polls again).

close() wakes every parked client with 410 Gone, which the inlined
client script treats as "stop polling". The registry calls it before the
project's layers leave the route table, so no worker thread stays parked
on a project that no longer exists.

=============================================================================
"""

import logging
import threading
from typing import Optional, TYPE_CHECKING

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, gone

if TYPE_CHECKING:
    from ..projects.compiler import BuildStats, Compiler

logger = logging.getLogger(__name__)


class LiveReloadMiddleware(Middleware):
    """
    Args:
        compiler: The project's compiler; its done listener drives wake-ups.
        path: Mount-relative endpoint path.
        timeout: Longest a client stays parked, in seconds.
    """

    def __init__(self, compiler: "Compiler", path: str = "/__hmr", timeout: float = 25.0):
        self.compiler = compiler
        self.path = path
        self.timeout = timeout

        self._cond = threading.Condition()
        stats = compiler.stats
        self._hash: Optional[str] = stats.hash if stats else None
        self._generation = 0
        self._waiting = 0
        self._closed = False

        compiler.add_done_listener(self._on_done)

    @property
    def waiting(self) -> int:
        """Number of clients currently parked."""
        with self._cond:
            return self._waiting

    @property
    def current_hash(self) -> Optional[str]:
        with self._cond:
            return self._hash

    def _on_done(self, stats: "BuildStats") -> None:
        with self._cond:
            self._hash = stats.hash
            self._generation += 1
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            parked = self._waiting
            self._cond.notify_all()
        self.compiler.remove_done_listener(self._on_done)
        logger.debug(f"[{self.compiler.name}] Live reload closed, woke {parked} clients")

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.path != self.path:
            return next(request)

        client_hash = request.get_query("hash")

        with self._cond:
            if self._closed:
                return gone(f"Project [{self.compiler.name}] was removed")

            if client_hash and client_hash == self._hash:
                generation = self._generation
                self._waiting += 1
                try:
                    self._cond.wait_for(
                        lambda: self._closed or self._generation != generation,
                        timeout=self.timeout,
                    )
                finally:
                    self._waiting -= 1

                if self._closed:
                    return gone(f"Project [{self.compiler.name}] was removed")

            current = self._hash

        payload = {"hash": current}
        if client_hash:
            payload["stale"] = current != client_hash
        return ResponseBuilder().json(payload).no_cache().build()
