"""
=============================================================================
MIDDLEWARE BASE
=============================================================================

Every request-handling unit in devhost, global or per-project, has the
same shape:

    def __call__(self, request, next) -> HTTPResponse

It either answers the request itself or calls next(request) to let the
following unit try. Units that hold resources (a compiler listener, parked
long-poll clients) also implement close(); the registry calls it when the
project they belong to is removed.

=============================================================================
GLOBAL PIPELINE vs PROJECT CHAINS
=============================================================================

    MiddlewarePipeline.wrap(front.handle)
        │
        ▼
    LoggingMiddleware ──► RouterFront.handle
                              │
                              ├── /shop  BuildServingMiddleware ─┐ next
                              │          LiveReloadMiddleware ◄──┘
                              ├── /blog  BuildServingMiddleware ...
                              └── admin Router (fallback)

The global pipeline is built once when the server starts. Project chains
come and go at runtime through the Router Front.

=============================================================================
"""

from abc import ABC, abstractmethod
from functools import partial, reduce
from typing import Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]
UnitFunc = Callable[[HTTPRequest, NextHandler], HTTPResponse]


class Middleware(ABC):
    """A request-handling unit: answer, or defer to next."""

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    def close(self) -> None:
        """Drop whatever the unit holds. Safe to call more than once."""

    @property
    def name(self) -> str:
        return type(self).__name__


class MiddlewarePipeline:
    """
    Ordered list of global units. Registration order is call order: the
    unit added first is entered first and returns last.
    """

    def __init__(self):
        self._units: List[Middleware] = []

    def add(self, unit: Middleware) -> "MiddlewarePipeline":
        self._units.append(unit)
        logger.debug(f"Pipeline unit registered: {unit.name}")
        return self

    def use(self, *units: Middleware) -> "MiddlewarePipeline":
        for unit in units:
            self.add(unit)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Fold the units around handler, innermost last."""
        return reduce(lambda inner, unit: partial(unit, next=inner), reversed(self._units), handler)

    def close(self) -> None:
        for unit in self._units:
            unit.close()

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self):
        return iter(self._units)


class FunctionMiddleware(Middleware):
    """A plain (request, next) function dressed as a Middleware."""

    def __init__(self, func: UnitFunc, name: Optional[str] = None):
        self.func = func
        self._label = name or getattr(func, "__name__", "anonymous")

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self.func(request, next)

    @property
    def name(self) -> str:
        return self._label


def function_middleware(func: UnitFunc) -> FunctionMiddleware:
    return FunctionMiddleware(func)
