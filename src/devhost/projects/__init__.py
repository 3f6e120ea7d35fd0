"""
=============================================================================
PROJECTS
=============================================================================

    names.py         sanitize() and mountable() for untrusted project names
    build_config.py  devhost.yaml → BuildConfig (fresh per project)
    compiler.py      Compiler interface + BundleCompiler
    pipeline.py      compiler + middleware units for one project
    registry.py      ProjectRegistry: add/remove pipelines at runtime
    bootstrap.py     template copy/unpack + dependency install

=============================================================================
"""

from .names import mountable, sanitize
from .build_config import (
    BuildConfig,
    CopyStep,
    WatchOptions,
    load_build_config,
    BUILD_CONFIG_NAME,
    LIVE_RELOAD_CLIENT_ENTRY,
    LIVE_RELOAD_PATH,
)
from .compiler import BuildStats, BundleCompiler, Compiler
from .pipeline import Pipeline, build_pipeline
from .registry import MountEntry, ProjectRegistry, RegistryContext
from .bootstrap import ProjectBootstrapper, install, materialize, materialize_archive

__all__ = [
    "sanitize",
    "mountable",
    "BuildConfig",
    "CopyStep",
    "WatchOptions",
    "load_build_config",
    "BUILD_CONFIG_NAME",
    "LIVE_RELOAD_CLIENT_ENTRY",
    "LIVE_RELOAD_PATH",
    "BuildStats",
    "BundleCompiler",
    "Compiler",
    "Pipeline",
    "build_pipeline",
    "MountEntry",
    "ProjectRegistry",
    "RegistryContext",
    "ProjectBootstrapper",
    "install",
    "materialize",
    "materialize_archive",
]
