"""
Pipeline assembly: one compiler plus the middleware units built on it.

    build_pipeline(config)
        compiler = factory(config)
        compiler.add_done_listener(log "Compilation done: <hash> <ms>")
        compiler.run()                     first build, synchronous
        compiler.watch()                   rebuild on change
        units = [BuildServingMiddleware, LiveReloadMiddleware]

Nothing here touches the route table; the registry mounts the units.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..middleware.base import Middleware
from ..middleware.build import BuildServingMiddleware
from ..middleware.live_reload import LiveReloadMiddleware
from .build_config import BuildConfig, LIVE_RELOAD_PATH
from .compiler import BuildStats, BundleCompiler, Compiler

logger = logging.getLogger(__name__)

CompilerFactory = Callable[[BuildConfig], Compiler]


@dataclass(eq=False)
class Pipeline:
    """A project's compiler and its middleware units. Never shared."""

    name: str
    compiler: Compiler
    units: list[Middleware] = field(default_factory=list)

    def close_units(self) -> None:
        """Ask every unit to release its resources; failures are logged."""
        for unit in self.units:
            try:
                unit.close()
            except Exception as e:
                logger.warning(f"[{self.name}] {unit.name}.close() failed: {e}")

    def close(self) -> None:
        self.close_units()
        self.compiler.close()


def compilation_logger(name: str) -> Callable[[BuildStats], None]:
    def on_done(stats: BuildStats) -> None:
        logger.info(f"[{name}] Compilation done: {stats.hash} {stats.time_ms:.0f}ms")
    return on_done


def build_pipeline(
    config: BuildConfig,
    compiler_factory: CompilerFactory = BundleCompiler,
    build_timeout: float = 30.0,
    live_reload_timeout: float = 25.0,
) -> Pipeline:
    """
    Create, run and watch a compiler for config and wrap it in units.

    The compiler is closed again if anything after its creation fails.
    """
    compiler = compiler_factory(config)
    try:
        compiler.add_done_listener(compilation_logger(config.name))
        compiler.run()
        compiler.watch()
        units: list[Middleware] = [
            BuildServingMiddleware(compiler, index=config.index, build_timeout=build_timeout),
            LiveReloadMiddleware(compiler, path=LIVE_RELOAD_PATH, timeout=live_reload_timeout),
        ]
    except Exception:
        compiler.close()
        raise

    return Pipeline(name=config.name, compiler=compiler, units=units)
