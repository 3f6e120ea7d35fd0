"""
=============================================================================
PIPELINE REGISTRY
=============================================================================

Owns every project pipeline: creates it, mounts it into the Router Front
and takes it down again, while worker threads keep serving requests.

=============================================================================
STATE
=============================================================================

All mutable state lives in a RegistryContext handed to the registry, so
two servers (or two tests) never share a map:

    entries     name → MountEntry(pipeline, mount)
    in_flight   name → Event, set when the pending add/remove settles
    lock        guards both maps AND every route-table edit

=============================================================================
ADD
=============================================================================

    add("shop")
      │ lock ─ "shop" in flight?   → AlreadyInProgress
      │      ─ "shop" mounted?     → return its Pipeline
      │      ─ mark in flight
      ▼
    prepare hook (bootstrap + install)      ┐
    load devhost.yaml → BuildConfig         │ slow, OUTSIDE the lock
    compiler run + watch, build units       ┘
      │ lock ─ front.mount("/shop", units)    one synchronous edit
      │      ─ entries["shop"] = MountEntry
      ▼
    clear in-flight mark (always)

A failure anywhere leaves no entry and no layer, is logged, and is
re-raised to the caller.

=============================================================================
REMOVE
=============================================================================

    remove("shop")
      wait for a pending add/remove of "shop" to settle, then:
      1. mount.detach()           gate closed: every layer of the chain
         pipeline.close_units()   falls through; parked clients get 410
      2. lock ─ front.unmount()   splice by identity (failure → warning)
              ─ del entries[...]  deleted even if the splice failed
      3. compiler.close()         watcher stopped, outside the lock

=============================================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..errors import AlreadyInProgress
from ..http.front import Mount, RouterFront
from .build_config import BUILD_CONFIG_NAME, WatchOptions, load_build_config
from .compiler import BundleCompiler
from .names import mountable, sanitize
from .pipeline import CompilerFactory, Pipeline, build_pipeline

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class MountEntry:
    """A mounted pipeline and the route-table layers it occupies."""

    name: str
    pipeline: Pipeline
    mount: Mount


@dataclass
class RegistryContext:
    """Everything a ProjectRegistry reads and writes."""

    front: RouterFront
    projects_dir: str
    compiler_factory: CompilerFactory = BundleCompiler
    prepare: Optional[Callable[[str], object]] = None
    build_config_name: str = BUILD_CONFIG_NAME
    watch_defaults: WatchOptions = field(default_factory=WatchOptions)
    build_timeout: float = 30.0
    live_reload_timeout: float = 25.0

    entries: dict[str, MountEntry] = field(default_factory=dict)
    in_flight: dict[str, threading.Event] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


class ProjectRegistry:
    """
    Add/remove project pipelines at runtime.

    Names are sanitized on the way in, so add("my app") and
    add("my_app") refer to the same project.
    """

    def __init__(self, context: RegistryContext):
        self.context = context

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, name: str) -> Optional[Pipeline]:
        with self.context.lock:
            entry = self.context.entries.get(name)
        return entry.pipeline if entry else None

    def names(self) -> list[str]:
        with self.context.lock:
            return sorted(self.context.entries)

    def __contains__(self, name: str) -> bool:
        with self.context.lock:
            return name in self.context.entries

    def __len__(self) -> int:
        with self.context.lock:
            return len(self.context.entries)

    # -------------------------------------------------------------------------
    # Add
    # -------------------------------------------------------------------------

    def add(self, name: str) -> Pipeline:
        """
        Build and mount projects/<name> under /<name>.

        Returns:
            The new Pipeline, or the existing one if already mounted.

        Raises:
            ValidationError: name is empty after sanitizing, or reserved
                for an admin route.
            AlreadyInProgress: another add/remove of name is running.
            ConfigurationError: missing project directory or bad devhost.yaml.
            DevServerError: bootstrap or install failed.
        """
        name = mountable(name)
        ctx = self.context

        with ctx.lock:
            if name in ctx.in_flight:
                raise AlreadyInProgress(name)
            entry = ctx.entries.get(name)
            if entry is not None:
                logger.debug(f"Project [{name}] already mounted")
                return entry.pipeline
            settled = threading.Event()
            ctx.in_flight[name] = settled

        try:
            pipeline = self._build(name)
            try:
                with ctx.lock:
                    mount = ctx.front.mount(f"/{name}", pipeline.units)
                    ctx.entries[name] = MountEntry(name=name, pipeline=pipeline, mount=mount)
            except Exception:
                pipeline.close()
                raise
        except Exception as e:
            logger.error(f"Error adding config [{name}]: {type(e).__name__}: {e}")
            raise
        finally:
            with ctx.lock:
                ctx.in_flight.pop(name, None)
            settled.set()

        logger.info(f"Build config [{name}] has been added")
        return pipeline

    def _build(self, name: str) -> Pipeline:
        ctx = self.context
        if ctx.prepare is not None:
            ctx.prepare(name)
        config = load_build_config(
            ctx.projects_dir,
            name,
            config_name=ctx.build_config_name,
            watch_defaults=ctx.watch_defaults,
        )
        return build_pipeline(
            config,
            compiler_factory=ctx.compiler_factory,
            build_timeout=ctx.build_timeout,
            live_reload_timeout=ctx.live_reload_timeout,
        )

    # -------------------------------------------------------------------------
    # Remove
    # -------------------------------------------------------------------------

    def remove(self, name: str) -> None:
        """
        Unmount and release projects/<name>. Unknown names are a no-op.

        A pending add() of the same name is waited for and then undone.
        """
        name = sanitize(name)
        ctx = self.context

        while True:
            with ctx.lock:
                pending = ctx.in_flight.get(name)
                if pending is None:
                    entry = ctx.entries.get(name)
                    if entry is None:
                        logger.debug(f"Project [{name}] is not mounted, nothing to remove")
                        return
                    settled = threading.Event()
                    ctx.in_flight[name] = settled
                    break
            logger.debug(f"Waiting for pending operation on [{name}]")
            pending.wait()

        try:
            entry.mount.detach()
            entry.pipeline.close_units()

            with ctx.lock:
                try:
                    ctx.front.unmount(entry.mount)
                except Exception as e:
                    logger.warning(f"Unmount of [{name}] failed, dropping entry anyway: {e}")
                finally:
                    ctx.entries.pop(name, None)

            entry.pipeline.compiler.close()
        finally:
            with ctx.lock:
                ctx.in_flight.pop(name, None)
            settled.set()

        logger.info(f"Build config [{name}] has been removed")

    def close_all(self) -> None:
        """
        Remove every project (server shutdown). Adds still in flight are
        included: remove() waits for them to settle, then undoes them.
        """
        with self.context.lock:
            names = sorted(set(self.context.entries) | set(self.context.in_flight))
        for name in names:
            try:
                self.remove(name)
            except Exception as e:
                logger.exception(f"Error removing config [{name}]: {e}")
