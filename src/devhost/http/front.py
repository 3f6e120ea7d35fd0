"""
=============================================================================
ROUTER FRONT
=============================================================================

The single route table every request walks through. Project pipelines are
mounted into it and removed from it while the server keeps serving.

    layers (tuple, replaced on every edit)
    ┌────────┬─────────────────────────┬──────┐
    │ /shop  │ BuildServingMiddleware  │ gate ├──┐ one gate per mount
    │ /shop  │ LiveReloadMiddleware    │ gate ├──┘
    │ /blog  │ BuildServingMiddleware  │ gate ├──┐
    │ /blog  │ LiveReloadMiddleware    │ gate ├──┘
    └────────┴─────────────────────────┴──────┘
                         │ nothing answered
                         ▼
                 fallback (admin Router)

=============================================================================
READERS NEVER LOCK
=============================================================================

Worker threads dispatch requests concurrently with /add and /remove.
Edits build a NEW tuple under a lock and swap it in with one assignment;
handle() grabs the current tuple once and walks that snapshot. A request
therefore sees the table either entirely before or entirely after an
edit, never half of one.

=============================================================================
GATES
=============================================================================

Each mount owns a threading.Event shared by all of its layers. Clearing it
(Mount.detach) makes every layer of that mount fall through to next() at
once, even for requests that took their snapshot before the layers were
spliced out. Removal is therefore:

    detach gate  →  close units  →  unmount (splice by identity)

=============================================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .request import HTTPRequest
from .response import HTTPResponse

logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]
Unit = Callable[[HTTPRequest, NextHandler], HTTPResponse]


def normalize_prefix(prefix: str) -> str:
    """ "shop/" → "/shop", "/" → "" (root mount). """
    stripped = prefix.strip("/")
    return f"/{stripped}" if stripped else ""


@dataclass(eq=False)
class Layer:
    """One (prefix, unit) slot. Compared by identity only."""

    prefix: str
    unit: Unit
    gate: threading.Event

    def sub_path(self, path: str) -> Optional[str]:
        """Path relative to this layer's prefix, or None when it does not apply."""
        if not self.prefix:
            return path
        if path == self.prefix:
            return "/"
        if path.startswith(self.prefix + "/"):
            return path[len(self.prefix):]
        return None


@dataclass(eq=False)
class Mount:
    """The layers one mount() call added, plus their shared gate."""

    prefix: str
    layers: tuple[Layer, ...]
    gate: threading.Event = field(default_factory=threading.Event)

    @property
    def attached(self) -> bool:
        return self.gate.is_set()

    def detach(self) -> None:
        """Make every layer of this mount pass requests straight to next()."""
        self.gate.clear()


class RouterFront:
    """
    Prefix dispatcher with a copy-on-write layer table.

    Args:
        fallback: Handler for requests no mounted layer answered.
    """

    def __init__(self, fallback: NextHandler):
        self._fallback = fallback
        self._layers: tuple[Layer, ...] = ()
        self._lock = threading.Lock()

    @property
    def layers(self) -> tuple[Layer, ...]:
        return self._layers

    def mount(self, prefix: str, units: Iterable[Unit]) -> Mount:
        """Append units under prefix (in order) and return their Mount."""
        prefix = normalize_prefix(prefix)
        gate = threading.Event()
        gate.set()
        layers = tuple(Layer(prefix=prefix, unit=unit, gate=gate) for unit in units)
        mount = Mount(prefix=prefix, layers=layers, gate=gate)

        with self._lock:
            self._layers = self._layers + layers

        logger.debug(f"Mounted {len(layers)} layers at {prefix or '/'}")
        return mount

    def unmount(self, mount: Mount) -> int:
        """
        Splice a mount's layers out of the table by identity.

        Returns:
            Number of layers removed.

        Raises:
            LookupError: none of the mount's layers is in the table.
        """
        mount.detach()
        with self._lock:
            before = self._layers
            remaining = tuple(layer for layer in before if not any(layer is m for m in mount.layers))
            removed = len(before) - len(remaining)
            if removed == 0 and mount.layers:
                raise LookupError(f"Mount at {mount.prefix or '/'} is not in the route table")
            self._layers = remaining

        logger.debug(f"Unmounted {removed} layers from {mount.prefix or '/'}")
        return removed

    def is_routed(self, path: str) -> bool:
        """True if some attached layer would see a request for path."""
        return any(layer.gate.is_set() and layer.sub_path(path) is not None for layer in self._layers)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        return self._dispatch(self._layers, 0, request)

    def _dispatch(self, layers: tuple[Layer, ...], start: int, request: HTTPRequest) -> HTTPResponse:
        for index in range(start, len(layers)):
            layer = layers[index]
            if not layer.gate.is_set():
                continue
            sub_path = layer.sub_path(request.path)
            if sub_path is None:
                continue

            def next_handler(_request: HTTPRequest, _index: int = index) -> HTTPResponse:
                # Continue with the un-mounted request, not the unit's copy.
                return self._dispatch(layers, _index + 1, request)

            return layer.unit(request.mounted(layer.prefix, sub_path), next_handler)

        return self._fallback(request)
