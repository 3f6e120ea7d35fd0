"""
=============================================================================
PER-PROJECT BUILD CONFIGURATION
=============================================================================

Every project ships a devhost.yaml next to its sources:

    projects/
    └── shop/
        ├── devhost.yaml
        ├── index.html
        └── src/
            ├── app.js
            └── cart.js

    # devhost.yaml
    entry:
      - src/app.js
      - src/cart.js
    output:
      filename: bundle.js
    plugins:
      - copy: {from: assets/logo.svg, to: logo.svg}
    watch:
      aggregate_timeout: 0.3

The file is read with PyYAML and turned into a FRESH BuildConfig for that
one project. Nothing is shared between projects, so the per-project
rewrites below can never leak from one pipeline into another:

    entry        ["devhost/client?path=__hmr", *entry]
    output_path  "/shop"
    public_path  "/shop/"
    plugins      [*plugins, CopyStep("index.html", "index.html")]

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

BUILD_CONFIG_NAME = "devhost.yaml"

# Mount-relative path of the long-poll endpoint, and the pseudo-entry that
# asks the compiler to inline the browser client for it.
LIVE_RELOAD_PATH = "/__hmr"
LIVE_RELOAD_CLIENT_ENTRY = "devhost/client?path=__hmr"

INDEX_FILE = "index.html"


@dataclass
class CopyStep:
    """Copy one file from the project directory into the build output."""

    source: str
    target: str


@dataclass
class WatchOptions:
    """How the compiler's watcher notices changes."""

    aggregate_timeout: float = 0.3
    poll: bool = True
    poll_interval: float = 1.0


@dataclass
class BuildConfig:
    """Resolved build settings for one project."""

    name: str
    context: str
    entry: list[str]
    output_filename: str = "bundle.js"
    output_path: str = ""
    public_path: str = "/"
    index: str = INDEX_FILE
    plugins: list[CopyStep] = field(default_factory=list)
    watch: WatchOptions = field(default_factory=WatchOptions)

    @property
    def source_entries(self) -> list[str]:
        """Entries that are real files under context (the client entry excluded)."""
        return [e for e in self.entry if e != LIVE_RELOAD_CLIENT_ENTRY]


# =============================================================================
# LOADING
# =============================================================================

def _fail(name: str, message: str) -> ConfigurationError:
    return ConfigurationError(f"[{name}] {message}", project=name)


def _read_yaml(name: str, path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"[{name}] Invalid YAML in {path}: {e}", project=name) from e
    except OSError as e:
        raise ConfigurationError(f"[{name}] Cannot read {path}: {e}", project=name) from e

    if not isinstance(data, dict):
        raise _fail(name, f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def _parse_entry(name: str, raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not raw or not all(isinstance(e, str) and e for e in raw):
        raise _fail(name, "'entry' must be a non-empty string or list of strings")
    return list(raw)


def _parse_plugins(name: str, raw: Any) -> list[CopyStep]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise _fail(name, "'plugins' must be a list")

    steps = []
    for item in raw:
        copy = item.get("copy") if isinstance(item, dict) else None
        if not isinstance(copy, dict) or not isinstance(copy.get("from"), str):
            raise _fail(name, f"Unsupported plugin: {item!r}")
        source = copy["from"]
        steps.append(CopyStep(source=source, target=copy.get("to") or os.path.basename(source)))
    return steps


def _parse_watch(name: str, raw: Any, defaults: WatchOptions) -> WatchOptions:
    if raw is None:
        return WatchOptions(**vars(defaults))
    if not isinstance(raw, dict):
        raise _fail(name, "'watch' must be a mapping")
    try:
        return WatchOptions(
            aggregate_timeout=float(raw.get("aggregate_timeout", defaults.aggregate_timeout)),
            poll=bool(raw.get("poll", defaults.poll)),
            poll_interval=float(raw.get("poll_interval", defaults.poll_interval)),
        )
    except (TypeError, ValueError) as e:
        raise _fail(name, f"Invalid 'watch' options: {e}") from e


def load_build_config(
    projects_dir: str,
    name: str,
    config_name: str = BUILD_CONFIG_NAME,
    watch_defaults: Optional[WatchOptions] = None,
) -> BuildConfig:
    """
    Build a BuildConfig for projects_dir/name.

    Raises:
        ConfigurationError: the project directory or its config file is
                            missing, the YAML does not parse, or a field
                            has the wrong shape.
    """
    context = os.path.join(projects_dir, name)
    if not os.path.isdir(context):
        raise _fail(name, f"Project directory not found: {context}")

    config_path = os.path.join(context, config_name)
    if not os.path.isfile(config_path):
        raise _fail(name, f"Build config not found: {config_path}")

    data = _read_yaml(name, config_path)

    output = data.get("output") or {}
    if not isinstance(output, dict):
        raise _fail(name, "'output' must be a mapping")
    filename = output.get("filename", "bundle.js")
    if not isinstance(filename, str) or not filename:
        raise _fail(name, "'output.filename' must be a non-empty string")

    config = BuildConfig(
        name=name,
        context=context,
        entry=[LIVE_RELOAD_CLIENT_ENTRY, *_parse_entry(name, data.get("entry"))],
        output_filename=filename.lstrip("/"),
        output_path=f"/{name}",
        public_path=f"/{name}/",
        plugins=_parse_plugins(name, data.get("plugins")),
        watch=_parse_watch(name, data.get("watch"), watch_defaults or WatchOptions()),
    )
    config.plugins.append(CopyStep(source=INDEX_FILE, target=INDEX_FILE))

    logger.debug(f"Loaded build config for [{name}]: {len(config.source_entries)} entries")
    return config
