"""
=============================================================================
MIDDLEWARE
=============================================================================

Global (wraps every request):
    LoggingMiddleware       access log on "devhost.access", X-Request-ID

Per project (mounted by the registry under /<name>):
    BuildServingMiddleware  in-memory build output, ETag/304
    LiveReloadMiddleware    /__hmr long-poll, 410 once the project is gone

All of them follow the same contract (see base.Middleware): answer the
request or call next(request).

=============================================================================
"""

from .base import (
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    FunctionMiddleware,
    function_middleware,
)
from .logging import LoggingMiddleware
from .build import BuildServingMiddleware
from .live_reload import LiveReloadMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "FunctionMiddleware",
    "function_middleware",
    "LoggingMiddleware",
    "BuildServingMiddleware",
    "LiveReloadMiddleware",
]
