"""
=============================================================================
PROJECT COMPILERS
=============================================================================

A Compiler turns a BuildConfig into an in-memory set of output files and
tells listeners whenever a build finishes.

    ┌──────────────┐   run()/watch()   ┌─────────────────────────────┐
    │ BuildConfig  │ ────────────────► │ Compiler                    │
    └──────────────┘                   │   output  {name: bytes}     │
                                       │   stats   BuildStats(hash)  │
                                       └──────────────┬──────────────┘
                                                      │ done listeners
                          ┌───────────────────────────┼──────────────────┐
                          ▼                           ▼                  ▼
                BuildServingMiddleware     LiveReloadMiddleware    "Compilation done"
                (serves output)            (wakes long-polls)      log line

The registry only depends on the abstract Compiler. BundleCompiler is the
built-in implementation: it concatenates entry files into one bundle,
inlines the live-reload client, runs copy steps and hashes the result.
How individual source files would be transformed (transpiling, loaders)
is out of scope.

=============================================================================
WATCH MODE
=============================================================================

The watcher is a polling thread, one per compiler:

    every poll_interval:  snapshot mtimes of entries + copy sources
    changed?              invalidate() → wait aggregate_timeout → rebuild

Waiting aggregate_timeout after the first change lets an editor's burst of
writes ("save all") collapse into a single rebuild.

=============================================================================
"""

import hashlib
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import parse_qs

from .build_config import BuildConfig, LIVE_RELOAD_CLIENT_ENTRY

logger = logging.getLogger(__name__)


@dataclass
class BuildStats:
    """Summary of one finished build."""

    hash: str
    time_ms: float
    assets: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


DoneListener = Callable[[BuildStats], None]


class Compiler(ABC):
    """
    Abstract compiler for one project.

    Subclasses implement run(), watch() and close() and report every
    finished build through _emit_done(). Everything else (output
    snapshot, listeners, the "valid" barrier) lives here.
    """

    def __init__(self, config: BuildConfig):
        self.config = config
        self._lock = threading.Lock()
        self._listeners: list[DoneListener] = []
        self._valid = threading.Event()
        self._output: dict[str, bytes] = {}
        self._stats: Optional[BuildStats] = None
        self._closed = False

    @abstractmethod
    def run(self) -> BuildStats:
        """Build once, synchronously."""

    @abstractmethod
    def watch(self) -> None:
        """Start rebuilding on source changes."""

    @abstractmethod
    def close(self) -> None:
        """Stop watching and release resources. Idempotent."""

    # -------------------------------------------------------------------------
    # State shared with the middleware
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def output(self) -> dict[str, bytes]:
        """Snapshot of the last emitted build (output name → bytes)."""
        with self._lock:
            return dict(self._output)

    @property
    def stats(self) -> Optional[BuildStats]:
        with self._lock:
            return self._stats

    @property
    def is_valid(self) -> bool:
        return self._valid.is_set()

    def wait_until_valid(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a build is available (or the compiler is closed).

        Returns False on timeout.
        """
        return self._valid.wait(timeout)

    def invalidate(self) -> None:
        """Mark the current output stale; waiters block until the next build."""
        if not self._closed:
            self._valid.clear()

    def add_done_listener(self, listener: DoneListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_done_listener(self, listener: DoneListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit_done(self, output: dict[str, bytes], stats: BuildStats) -> None:
        with self._lock:
            self._output = output
            self._stats = stats
            listeners = list(self._listeners)
        self._valid.set()

        for listener in listeners:
            try:
                listener(stats)
            except Exception as e:
                logger.exception(f"[{self.name}] Done listener failed: {e}")

    def _mark_closed(self) -> None:
        self._closed = True
        # Nobody should wait forever on a compiler that will never build again.
        self._valid.set()


# =============================================================================
# LIVE-RELOAD CLIENT
# =============================================================================

_CLIENT_TEMPLATE = """\
(function () {
  var endpoint = "%(endpoint)s";
  var known = null;
  function poll() {
    var xhr = new XMLHttpRequest();
    xhr.open("GET", endpoint + (known ? "?hash=" + known : ""));
    xhr.onload = function () {
      if (xhr.status === 410) { return; }
      var next = JSON.parse(xhr.responseText).hash;
      if (known && next && next !== known) { window.location.reload(); return; }
      known = next || known;
      poll();
    };
    xhr.onerror = function () { setTimeout(poll, 2000); };
    xhr.send();
  }
  poll();
})();
"""


def live_reload_client(public_path: str, entry: str = LIVE_RELOAD_CLIENT_ENTRY) -> str:
    """Browser script for the client entry, pointed at public_path + ?path=."""
    _, _, query = entry.partition("?")
    path = parse_qs(query).get("path", ["__hmr"])[0]
    return _CLIENT_TEMPLATE % {"endpoint": public_path.rstrip("/") + "/" + path.lstrip("/")}


# =============================================================================
# BUNDLE COMPILER
# =============================================================================

class BundleCompiler(Compiler):
    """
    Concatenating compiler with a polling watcher.

    Output:
        output_filename   every entry, in order, each preceded by a
                          "/* <entry> */" marker; the client entry is
                          replaced by the live-reload script
        <copy targets>    raw bytes of each copy step's source

    A missing entry is a build error (recorded in stats, build still
    emitted). A missing copy source is a warning.
    """

    def __init__(self, config: BuildConfig):
        super().__init__(config)
        self._stop = threading.Event()
        self._watcher: Optional[threading.Thread] = None
        self._build_lock = threading.Lock()

    def _watched_paths(self) -> list[str]:
        paths = [os.path.join(self.config.context, e) for e in self.config.source_entries]
        paths += [os.path.join(self.config.context, s.source) for s in self.config.plugins]
        return paths

    def _snapshot(self) -> dict[str, Optional[int]]:
        mtimes: dict[str, Optional[int]] = {}
        for path in self._watched_paths():
            try:
                mtimes[path] = os.stat(path).st_mtime_ns
            except OSError:
                mtimes[path] = None
        return mtimes

    def _read(self, relpath: str) -> bytes:
        with open(os.path.join(self.config.context, relpath), "rb") as f:
            return f.read()

    def run(self) -> BuildStats:
        with self._build_lock:
            started = time.perf_counter()
            output: dict[str, bytes] = {}
            errors: list[str] = []
            warnings: list[str] = []

            chunks = []
            for entry in self.config.entry:
                if entry == LIVE_RELOAD_CLIENT_ENTRY:
                    chunks.append(f"/* {entry} */\n{live_reload_client(self.config.public_path, entry)}")
                    continue
                try:
                    source = self._read(entry).decode("utf-8", errors="replace")
                except OSError as e:
                    errors.append(f"Module not found: {entry} ({e.strerror or e})")
                    continue
                chunks.append(f"/* {entry} */\n{source}")
            output[self.config.output_filename] = "\n".join(chunks).encode("utf-8")

            for step in self.config.plugins:
                try:
                    output[step.target.lstrip("/")] = self._read(step.source)
                except OSError:
                    warnings.append(f"Copy source not found: {step.source}")

            digest = hashlib.sha1()
            for name in sorted(output):
                digest.update(name.encode("utf-8"))
                digest.update(output[name])

            stats = BuildStats(
                hash=digest.hexdigest()[:20],
                time_ms=(time.perf_counter() - started) * 1000,
                assets=sorted(output),
                errors=errors,
                warnings=warnings,
            )

        for error in errors:
            logger.error(f"[{self.name}] {error}")
        for warning in warnings:
            logger.debug(f"[{self.name}] {warning}")

        self._emit_done(output, stats)
        return stats

    def watch(self) -> None:
        if self._watcher is not None or self._closed:
            return
        self._watcher = threading.Thread(
            target=self._watch_loop,
            name=f"watch-{self.name}",
            daemon=True,
        )
        self._watcher.start()

    def _watch_loop(self) -> None:
        options = self.config.watch
        last = self._snapshot()
        logger.debug(f"[{self.name}] Watching {len(last)} files every {options.poll_interval}s")

        while not self._stop.wait(options.poll_interval):
            current = self._snapshot()
            if current == last:
                continue

            self.invalidate()
            if self._stop.wait(options.aggregate_timeout):
                break
            last = self._snapshot()
            logger.info(f"[{self.name}] Change detected, rebuilding")
            try:
                self.run()
            except Exception as e:
                logger.exception(f"[{self.name}] Rebuild failed: {e}")

    def close(self) -> None:
        if self._closed:
            return
        self._stop.set()
        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=5.0)
        self._watcher = None
        self._mark_closed()
        logger.debug(f"[{self.name}] Compiler closed")
