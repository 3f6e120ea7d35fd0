"""
=============================================================================
DEVHOST
=============================================================================

A development server that hosts many front-end projects at once. Each
project under projects/<name> gets its own compiler, watcher and
live-reload endpoint, mounted under /<name>/ of a single HTTP listener,
and projects come and go at runtime without a restart:

    $ devhost --port 8080
    $ curl localhost:8080/add/shop
    Build config [shop] has been added
    $ open http://localhost:8080/shop/
    $ curl localhost:8080/remove/shop
    Build config [shop] has been removed

=============================================================================
PACKAGE LAYOUT
=============================================================================

    core/        sockets, connections, worker threads
    http/        parsing, responses, admin Router, RouterFront
    middleware/  access log, build serving, live reload
    handlers/    admin endpoints
    projects/    build config, compilers, pipelines, registry, bootstrap
    files/       async tree walker, tar pack/unpack/repack
    config.py    DevServerConfig
    server.py    DevServer
    errors.py    DevServerError and subclasses

=============================================================================
"""

__version__ = "1.0.0"

from .errors import (
    DevServerError,
    ValidationError,
    ConfigurationError,
    AlreadyInProgress,
    NotADirectory,
    FileSystemError,
    InstallError,
)
from .config import DevServerConfig
from .server import DevServer, create_server

__all__ = [
    "DevServer",
    "DevServerConfig",
    "create_server",
    "DevServerError",
    "ValidationError",
    "ConfigurationError",
    "AlreadyInProgress",
    "NotADirectory",
    "FileSystemError",
    "InstallError",
    "__version__",
]
