"""
=============================================================================
BUILD-SERVING MIDDLEWARE
=============================================================================

Serves one project's compiled output from memory, under its mount.

    GET /shop/            → index.html from the last build
    GET /shop/bundle.js   → the bundle
    GET /shop/other       → next()  (not an output file)

If the compiler is mid-rebuild, the request waits (up to build_timeout)
for the new output instead of getting a stale or half-written file.

Every response carries the build hash as its ETag, so a browser that
already has the current bundle gets a 304 with no body.

Once close() is called the unit stops serving and passes every request to
next(); the registry calls it while removing the project.

=============================================================================
"""

import logging
from typing import Optional, TYPE_CHECKING

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, not_modified, service_unavailable

if TYPE_CHECKING:
    from ..projects.compiler import Compiler

logger = logging.getLogger(__name__)


class BuildServingMiddleware(Middleware):
    """
    Args:
        compiler: The project's compiler (already run at least once).
        index: Output file served for "/".
        build_timeout: Seconds to wait for a pending rebuild before 503.
        headers: Extra headers added to every served file.
    """

    METHODS = ("GET", "HEAD")

    def __init__(
        self,
        compiler: "Compiler",
        index: str = "index.html",
        build_timeout: float = 30.0,
        headers: Optional[dict[str, str]] = None,
    ):
        self.compiler = compiler
        self.index = index
        self.build_timeout = build_timeout
        self.headers = dict(headers if headers is not None else {"X-Custom-Header": "yes"})
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.debug(f"[{self.compiler.name}] Build serving stopped")

    def _output_name(self, path: str) -> str:
        name = path.lstrip("/")
        if not name or name.endswith("/"):
            name += self.index
        return name

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if self._closed or request.method not in self.METHODS:
            return next(request)

        name = self._output_name(request.path)

        if not self.compiler.wait_until_valid(self.build_timeout):
            logger.warning(f"[{self.compiler.name}] Build not ready after {self.build_timeout}s")
            return service_unavailable(f"Build for [{self.compiler.name}] is not ready")
        if self._closed or self.compiler.closed:
            return next(request)

        content = self.compiler.output.get(name)
        if content is None:
            return next(request)

        stats = self.compiler.stats
        tag = stats.hash if stats else None
        if tag and request.get_header("if-none-match").strip('"') == tag:
            return not_modified(tag)

        builder = (ResponseBuilder()
            .file(content, name)
            .headers(self.headers)
            .no_cache())
        if tag:
            builder.etag(tag)

        response = builder.build()
        if request.method == "HEAD":
            response.headers["Content-Length"] = str(len(content))
            response.body = b""
        return response
