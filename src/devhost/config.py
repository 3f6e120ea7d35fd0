"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every knob of the dev server in one dataclass. Three ways to build it:

    config = DevServerConfig(port=3000, projects_dir="projects")
    config = DevServerConfig.from_env()          # DEVHOST_* variables
    python -m devhost --port 3000 --project shop # CLI, see __main__.py

validate() runs before the server binds anything and raises ValueError
on the first bad value.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    DEVHOST_HOST              bind address            (127.0.0.1)
    DEVHOST_PORT              bind port, 0 = any free (8080)
    DEVHOST_WORKERS           max worker threads      (16)
    DEVHOST_TIMEOUT           socket read timeout     (30)
    DEVHOST_LOG_LEVEL         DEBUG/INFO/...          (INFO)
    DEVHOST_LOG_FORMAT        text or json            (text)
    DEVHOST_PROJECTS_DIR      project root            (projects)
    DEVHOST_TEMPLATE          template dir or .tar.gz (unset)
    DEVHOST_INSTALL_COMMAND   e.g. "npm install"      (unset)
    DEVHOST_PROJECTS          comma-separated projects mounted at startup

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .projects.build_config import BUILD_CONFIG_NAME, WatchOptions

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class DevServerConfig:
    """
    Dev server configuration.

    Network and HTTP settings behave exactly like a plain HTTP server's;
    the project settings drive the registry, the bootstrapper and the
    per-project compilers.
    """

    # Network
    host: str = "127.0.0.1"
    port: int = 8080
    backlog: int = 128
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0

    # HTTP
    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    # Threads. Each open live-reload tab parks one worker.
    min_workers: int = 4
    max_workers: int = 16

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    server_name: str = "devhost/1.0"

    # Projects
    projects_dir: str = "projects"
    template_path: Optional[str] = None
    install_command: Optional[str] = None
    install_timeout: Optional[float] = 600.0
    build_config_name: str = BUILD_CONFIG_NAME
    initial_projects: list[str] = field(default_factory=list)

    # Compiler / middleware
    poll_interval: float = 1.0
    """Seconds between watcher scans of a project's sources."""

    aggregate_timeout: float = 0.3
    """Quiet period after a change before the rebuild starts."""

    live_reload_timeout: float = 25.0
    """How long /__hmr holds a request open waiting for a new build."""

    build_timeout: float = 30.0
    """How long a request waits for a valid build before 503."""

    @classmethod
    def from_env(cls) -> "DevServerConfig":
        projects = os.getenv("DEVHOST_PROJECTS", "")
        return cls(
            host=os.getenv("DEVHOST_HOST", "127.0.0.1"),
            port=int(os.getenv("DEVHOST_PORT", "8080")),
            max_workers=int(os.getenv("DEVHOST_WORKERS", "16")),
            timeout=float(os.getenv("DEVHOST_TIMEOUT", "30")),
            log_level=os.getenv("DEVHOST_LOG_LEVEL", "INFO"),
            log_format=os.getenv("DEVHOST_LOG_FORMAT", "text"),
            projects_dir=os.getenv("DEVHOST_PROJECTS_DIR", "projects"),
            template_path=os.getenv("DEVHOST_TEMPLATE") or None,
            install_command=os.getenv("DEVHOST_INSTALL_COMMAND") or None,
            initial_projects=[p.strip() for p in projects.split(",") if p.strip()],
        )

    def watch_options(self) -> WatchOptions:
        """Watcher defaults handed to every project's BuildConfig."""
        return WatchOptions(
            aggregate_timeout=self.aggregate_timeout,
            poll=True,
            poll_interval=self.poll_interval,
        )

    def validate(self) -> None:
        """Fail fast on values the server cannot run with."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")
        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        if not self.projects_dir:
            raise ValueError("projects_dir must not be empty")
        for name in ("poll_interval", "live_reload_timeout", "build_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.aggregate_timeout < 0:
            raise ValueError("aggregate_timeout must be >= 0")
