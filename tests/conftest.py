"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Generator, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from devhost import DevServer, DevServerConfig
from devhost.http import HTTPRequest
from devhost.projects.build_config import BuildConfig
from devhost.projects.compiler import BuildStats, Compiler


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request for a project asset."""
    return (
        b"GET /shop/bundle.js?v=2&debug HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: */*\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "shop", "template": "starter"}'
    return (
        b"POST /add/shop HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config(tmp_path) -> DevServerConfig:
    """Default test server configuration."""
    return DevServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=8,
        timeout=5.0,
        log_level="WARNING",
        projects_dir=str(tmp_path / "projects"),
        poll_interval=0.05,
        aggregate_timeout=0.05,
        live_reload_timeout=2.0,
        build_timeout=2.0,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def make_request(path: str, method: str = "GET", **headers: str) -> HTTPRequest:
    """HTTPRequest as the parser would produce it for path (query included)."""
    from devhost.http.request import parse_request

    lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
    lines += [f"{name.replace('_', '-')}: {value}" for name, value in headers.items()]
    return parse_request(("\r\n".join(lines) + "\r\n\r\n").encode())


# =============================================================================
# PROJECTS
# =============================================================================

DEFAULT_YAML = """\
entry: ./src/main.js
output:
  filename: bundle.js
plugins:
  - copy:
      from: assets/logo.svg
      to: logo.svg
"""


def write_project(
    projects_dir: Path,
    name: str,
    yaml_text: Optional[str] = DEFAULT_YAML,
    main_js: str = "console.log('hello');\n",
    index_html: str = "<html><script src='bundle.js'></script></html>\n",
) -> Path:
    """Create projects_dir/name with a build config and sources."""
    root = projects_dir / name
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "assets").mkdir(exist_ok=True)
    (root / "src" / "main.js").write_text(main_js)
    (root / "assets" / "logo.svg").write_text("<svg/>")
    (root / "index.html").write_text(index_html)
    if yaml_text is not None:
        (root / "devhost.yaml").write_text(yaml_text)
    return root


@pytest.fixture
def projects_dir(tmp_path) -> Path:
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def make_project(projects_dir):
    """Factory: make_project("shop") → path of a buildable project."""
    def factory(name: str, **kwargs) -> Path:
        return write_project(projects_dir, name, **kwargs)
    return factory


class FakeCompiler(Compiler):
    """
    Compiler that never touches the filesystem.

    run() emits {"index.html": ..., "bundle.js": ...} with a hash that
    changes on every build; rebuild() emits another build on demand.
    """

    instances: list["FakeCompiler"] = []

    def __init__(self, config: BuildConfig):
        super().__init__(config)
        self.builds = 0
        self.watching = False
        self.close_calls = 0
        FakeCompiler.instances.append(self)

    def run(self) -> BuildStats:
        self.builds += 1
        output = {
            "index.html": f"<html>{self.name}</html>".encode(),
            self.config.output_filename: f"/* {self.name} build {self.builds} */".encode(),
        }
        stats = BuildStats(hash=f"{self.name}-{self.builds}", time_ms=1.0, assets=sorted(output))
        self._emit_done(output, stats)
        return stats

    def rebuild(self) -> BuildStats:
        self.invalidate()
        return self.run()

    def watch(self) -> None:
        self.watching = True

    def close(self) -> None:
        self.close_calls += 1
        self.watching = False
        self._mark_closed()


@pytest.fixture
def fake_compiler_factory():
    FakeCompiler.instances = []
    yield FakeCompiler
    FakeCompiler.instances = []


def build_config_for(name: str, context: str = "/nonexistent") -> BuildConfig:
    from devhost.projects.build_config import LIVE_RELOAD_CLIENT_ENTRY

    return BuildConfig(
        name=name,
        context=context,
        entry=[LIVE_RELOAD_CLIENT_ENTRY, "./src/main.js"],
        output_path=f"/{name}",
        public_path=f"/{name}/",
    )


# =============================================================================
# LIVE SERVER
# =============================================================================

class TestServer:
    """Runs a DevServer in a background thread."""

    __test__ = False

    def __init__(self, server: DevServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.server_address[1]

    def url(self, path: str) -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.ready_event.wait(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def test_server(config, projects_dir, fake_compiler_factory) -> Generator[TestServer, None, None]:
    """A running DevServer over projects_dir using FakeCompiler."""
    config.projects_dir = str(projects_dir)
    srv = TestServer(DevServer(config, compiler_factory=fake_compiler_factory))
    srv.start()

    yield srv

    srv.stop()


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
