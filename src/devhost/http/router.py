"""
=============================================================================
ADMIN ROUTER
=============================================================================

The last stop of the Router Front. A request lands here only when no
mounted project claimed its path, so the table is short and fixed:

    GET /add/:name       mount a project
    GET /remove/:name    unmount a project
    GET /projects        list mounted names
    GET /export/:name    download a project's sources

=============================================================================
PATTERNS
=============================================================================

    ":name"   one path segment, captured as name
    "*rest"   everything after it, slashes included

Patterns are turned into anchored regexes when the route is added:

    "/export/:name"  →  ^/export/(?P<name>[^/]+)$
    "/files/*rest"   →  ^/files/(?P<rest>.*)$

Lookup walks the table in insertion order. A path that some route knows
under another method gets 405 plus Allow; anything else gets 404.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed

Handler = Callable[[HTTPRequest], HTTPResponse]

ANY_METHOD = ("DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT")

_PLACEHOLDER = re.compile(r"/([:*])(\w*)")


def compile_path(path: str) -> re.Pattern:
    """Translate a route pattern into an anchored regex with named groups."""
    trimmed = "/" + path.strip("/")
    source = []
    cursor = 0
    for placeholder in _PLACEHOLDER.finditer(trimmed):
        source.append(re.escape(trimmed[cursor:placeholder.start()]))
        kind, name = placeholder.groups()
        if kind == ":":
            source.append(f"/(?P<{name}>[^/]+)")
            cursor = placeholder.end()
        else:
            source.append(f"/(?P<{name or 'wildcard'}>.*)")
            cursor = len(trimmed)
            break
    source.append(re.escape(trimmed[cursor:]))
    return re.compile("^" + "".join(source) + "$")


@dataclass
class Route:
    """One entry of the table."""

    path: str
    method: Optional[str]
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    regex: re.Pattern = field(init=False, repr=False)

    def __post_init__(self):
        if self.method:
            self.method = self.method.upper()
        self.regex = compile_path(self.path)

    def accepts(self, method: str) -> bool:
        return self.method is None or self.method == method.upper()

    def params_for(self, path: str) -> Optional[Dict[str, str]]:
        found = self.regex.match(path)
        return found.groupdict() if found else None


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


class Router:
    """
    Method + pattern router.

        router = Router()

        @router.get("/add/:name")
        def add(request):
            return ok(f"adding {request.path_params['name']}")
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._table: List[Route] = []

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        route = Route(self.prefix + path, method, handler, name, meta)
        self._table.append(route)
        return route

    def routes(self) -> List[Route]:
        return list(self._table)

    def _candidates(self, path: str):
        """Yield (route, params) for every route whose pattern fits path."""
        path = "/" + path.strip("/")
        for route in self._table:
            params = route.params_for(path)
            if params is not None:
                yield route, params

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        for route, params in self._candidates(path):
            if route.accepts(method):
                return RouteMatch(route, params)
        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        allowed = set()
        for route, _ in self._candidates(path):
            allowed.update((route.method,) if route.method else ANY_METHOD)
        return sorted(allowed)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        found = self.match(request.method, request.path)
        if found is None:
            allowed = self.get_allowed_methods(request.path)
            if allowed:
                return method_not_allowed(allowed)
            return not_found(f"No route matches {request.full_path}")

        request.path_params = found.params
        return found.route.handler(request)

    # -- decorator forms ---------------------------------------------------

    def route(self, path: str, method: Optional[str] = None, name: Optional[str] = None, **meta: Any):
        def register(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, **meta)
            return handler
        return register

    def get(self, path: str, **kwargs: Any):
        return self.route(path, "GET", **kwargs)

    def post(self, path: str, **kwargs: Any):
        return self.route(path, "POST", **kwargs)

    def delete(self, path: str, **kwargs: Any):
        return self.route(path, "DELETE", **kwargs)
