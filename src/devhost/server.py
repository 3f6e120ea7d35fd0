"""
=============================================================================
DEV SERVER
=============================================================================

One HTTP listener, many live projects:

    client ─▶ SocketServer ─▶ ThreadPool ─▶ _process_connection
                                               │
                                  parse ─▶ LoggingMiddleware
                                               │
                                           RouterFront
                            ┌──────────────────┼───────────────────┐
                       /shop/* layers     /blog/* layers      no match
                   (build out, /__hmr)  (build out, /__hmr)       │
                                                            admin Router
                                                  /add/:name  /remove/:name
                                                  /projects   /export/:name

GET /add/shop builds projects/shop and mounts its chain under /shop/ while
the server keeps answering every other request; GET /remove/shop takes it
down again. See projects/registry.py for how the two interleave.

=============================================================================
USAGE
=============================================================================

    server = DevServer(DevServerConfig(port=3000, initial_projects=["shop"]))
    server.run()                       # blocks until Ctrl+C / shutdown()

Tests swap the compiler:

    server = DevServer(config, compiler_factory=FakeCompiler)

=============================================================================
"""

import logging
import os
from typing import Callable, Optional

from .config import DevServerConfig
from .core import Connection, SocketServer, ThreadPool
from .handlers.admin import admin_router
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    RequestParser,
    ResponseBuilder,
    RouterFront,
)
from .middleware import LoggingMiddleware, Middleware, MiddlewarePipeline
from .projects import BundleCompiler, ProjectBootstrapper, ProjectRegistry, RegistryContext
from .projects.pipeline import CompilerFactory

logger = logging.getLogger(__name__)


class DevServer:
    """
    Multi-project development server.

    Args:
        config: Server configuration; validated immediately.
        compiler_factory: Builds one Compiler per project BuildConfig.
    """

    def __init__(
        self,
        config: Optional[DevServerConfig] = None,
        compiler_factory: CompilerFactory = BundleCompiler,
    ):
        self.config = config or DevServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self.bootstrapper = ProjectBootstrapper(
            self.config.projects_dir,
            template_path=self.config.template_path,
            install_command=self.config.install_command,
            install_timeout=self.config.install_timeout,
        )

        # The admin router is both the registry's collaborator and the
        # front's fallback, so the front is created around a late-bound call.
        self.front = RouterFront(fallback=lambda request: self.admin.handle(request))
        self.registry = ProjectRegistry(RegistryContext(
            front=self.front,
            projects_dir=self.config.projects_dir,
            compiler_factory=compiler_factory,
            prepare=self.bootstrapper.prepare,
            build_config_name=self.config.build_config_name,
            watch_defaults=self.config.watch_options(),
            build_timeout=self.config.build_timeout,
            live_reload_timeout=self.config.live_reload_timeout,
        ))
        self.admin = admin_router(self.registry, self.config.projects_dir)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))

        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._running = False

    # =========================================================================
    # Configuration
    # =========================================================================

    def use(self, middleware: Middleware) -> "DevServer":
        """Add global middleware, run in front of the Router Front."""
        self._middleware.add(middleware)
        return self

    @property
    def ready_event(self):
        return self._socket_server.ready_event

    @property
    def server_address(self):
        """(host, port) actually bound, once ready_event is set."""
        return self._socket_server.bound_address

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def run(self):
        """Start serving (blocking) until shutdown() or a signal."""
        self._running = True
        self._setup_logging()

        os.makedirs(self.config.projects_dir, exist_ok=True)
        self._handler = self._middleware.wrap(self.front.handle)
        self._thread_pool.start()
        self._mount_initial_projects()

        logger.info(
            f"Starting {self.config.server_name} on {self.config.host}:{self.config.port} "
            f"(projects: {os.path.abspath(self.config.projects_dir)})"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop; run() returns once it has."""
        self._socket_server.shutdown()

    def _mount_initial_projects(self):
        for name in self.config.initial_projects:
            try:
                self.registry.add(name)
            except Exception as e:
                logger.error(f"Initial project [{name}] not mounted: {e}")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("devhost").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self.registry.close_all()
        self._middleware.close()
        self._thread_pool.shutdown(wait=True, timeout=5.0)
        logger.info("Server stopped")

    # =========================================================================
    # Request handling
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            block=False,
        )
        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one client (worker thread)."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, e.status_code, str(e))
                        break

                    try:
                        response = self._handler(request)
                    except Exception as e:
                        logger.exception(f"[{conn.id}] Handler error: {e}")
                        response = (ResponseBuilder()
                            .status(HTTPStatus.INTERNAL_SERVER_ERROR)
                            .json({"error": "Internal Server Error"})
                            .build())

                    keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break
                    if not keep_alive:
                        break
                    conn.set_keep_alive()

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except ValueError as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break
                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: int, message: str):
        response = (ResponseBuilder()
            .status(HTTPStatus(status))
            .json({"error": message})
            .close_connection()
            .build())
        conn.send_response(response.to_bytes(self.config.server_name))


def create_server(config: Optional[DevServerConfig] = None, **kwargs) -> DevServer:
    """Factory mirroring DevServer(config, **kwargs)."""
    return DevServer(config, **kwargs)
