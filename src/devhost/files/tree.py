"""
=============================================================================
DIRECTORY TREE WALKER
=============================================================================

Scans a directory into an in-memory tree (or a single-level listing) by
fanning out one status check per child and joining them before the level
is considered complete.

=============================================================================
FAN-OUT PER LEVEL
=============================================================================

    scan_tree("template")
          │
          ▼
    listdir("template") → ["b.txt", "a", "c"]  ── sort ──► ["a", "b.txt", "c"]
          │
          ├── stat("template/a")      ─┐
          ├── stat("template/b.txt")   ├── dispatched together
          └── stat("template/c")      ─┘
          │
          ▼  (wait for ALL of them)
    DirNode(dirs=[a, c], files=[b.txt])
          │
          └── a and c recurse the same way, concurrently

Every stat()/listdir() is a blocking syscall, so each one runs through
asyncio.to_thread(). Wall-clock time grows with the depth of the tree
rather than its node count.

If any child fails, the first error wins: the remaining sibling tasks are
cancelled and the error is raised as FileSystemError. Ordering inside a
level is the sorted raw name order, decided before any task starts.

=============================================================================
NODE SHAPE
=============================================================================

    DirNode(name="", path="template", dir_name_path="")
    ├── DirNode(name="a", path="template/a", dir_name_path="a")
    │   └── DirNode(name="b", path="template/a/b", dir_name_path="a.b")
    └── FileLeaf(name="index.html", path="template/index.html")

dir_name_path is the dot-joined chain of directory names from the scan
root (the root itself has "").

=============================================================================
"""

import asyncio
import logging
import os
import stat
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union, Collection

from ..errors import FileSystemError, NotADirectory

logger = logging.getLogger(__name__)


NameFilter = Optional[Collection[str]]


# =============================================================================
# NODES
# =============================================================================

@dataclass
class FileLeaf:
    """A regular file (or anything that is not a directory) found by a scan."""

    name: str
    path: str


@dataclass
class DirEntry:
    """A directory found by a single-level scan (not descended into)."""

    name: str
    path: str


@dataclass
class DirNode:
    """A scanned directory with its sorted children."""

    name: str
    path: str
    dir_name_path: str = ""
    dirs: list["DirNode"] = field(default_factory=list)
    files: list[FileLeaf] = field(default_factory=list)


@dataclass
class FlatListing:
    """Immediate children of a directory partitioned by type."""

    files: list[FileLeaf] = field(default_factory=list)
    dirs: list[DirEntry] = field(default_factory=list)


TreeNode = Union[DirNode, FileLeaf]


# =============================================================================
# BLOCKING CALLS (run in worker threads)
# =============================================================================

def _join(parent: str, name: str) -> str:
    # Paths inside a tree are always "/"-separated.
    return os.path.join(parent, name).replace("\\", "/")


async def _stat(path: str) -> os.stat_result:
    try:
        return await asyncio.to_thread(os.stat, path)
    except OSError as e:
        raise FileSystemError(f"Cannot stat {path}: {e.strerror or e}", path) from e


async def _listdir(path: str) -> list[str]:
    try:
        names = await asyncio.to_thread(os.listdir, path)
    except OSError as e:
        raise FileSystemError(f"Cannot list {path}: {e.strerror or e}", path) from e
    return sorted(names)


async def _require_dir(path: str) -> None:
    """Raise NotADirectory unless path resolves (after symlinks) to a directory."""
    try:
        st = await asyncio.to_thread(os.stat, path)
    except OSError as e:
        raise NotADirectory(path) from e
    if not stat.S_ISDIR(st.st_mode):
        raise NotADirectory(path)


async def _settle_all(coros: list) -> list:
    """
    Run coroutines concurrently and return their results in order.

    Unlike asyncio.gather(), the first failure cancels every sibling that
    is still outstanding and waits for the cancellations to land before
    re-raising, so no task outlives the level that spawned it.
    """
    if not coros:
        return []

    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        # A sibling of ours failed upstream; take our own children down too.
        for task in tasks:
            task.cancel()
        raise

    failed = next((t for t in tasks if t in done and not t.cancelled() and t.exception()), None)
    if failed is not None:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise failed.exception()

    return [t.result() for t in tasks]


# =============================================================================
# ASYNC PRIMITIVES
# =============================================================================

async def _scan_dir(node: DirNode, name_filter: NameFilter) -> DirNode:
    names = await _listdir(node.path)
    paths = [_join(node.path, name) for name in names]

    # Dispatch every status check for this level before awaiting any.
    stats = await _settle_all([_stat(p) for p in paths])

    subdirs: list[DirNode] = []
    for name, path, st in zip(names, paths, stats):
        if stat.S_ISDIR(st.st_mode):
            dotted = f"{node.dir_name_path}.{name}" if node.dir_name_path else name
            subdirs.append(DirNode(name=name, path=path, dir_name_path=dotted))
        elif name_filter is None or name in name_filter:
            node.files.append(FileLeaf(name=name, path=path))

    node.dirs = await _settle_all([_scan_dir(d, name_filter) for d in subdirs])
    return node


async def scan_tree_async(root: str, name_filter: NameFilter = None) -> DirNode:
    """
    Recursively scan root into a DirNode tree.

    Args:
        root: Directory to scan. Symlinks are followed.
        name_filter: When given, only files whose name is in this
                     collection are kept. Directories are never filtered.

    Raises:
        NotADirectory: root does not resolve to a directory.
        FileSystemError: any listing or status check below root failed.
    """
    root = str(root).replace("\\", "/")
    await _require_dir(root)
    logger.debug(f"Scanning tree {root}")
    return await _scan_dir(DirNode(name="", path=root), name_filter)


async def scan_flat_async(root: str) -> FlatListing:
    """Single-level scan of root: immediate children split into files and dirs."""
    root = str(root).replace("\\", "/")
    await _require_dir(root)

    names = await _listdir(root)
    paths = [_join(root, name) for name in names]
    stats = await _settle_all([_stat(p) for p in paths])

    listing = FlatListing()
    for name, path, st in zip(names, paths, stats):
        if stat.S_ISDIR(st.st_mode):
            listing.dirs.append(DirEntry(name=name, path=path))
        else:
            listing.files.append(FileLeaf(name=name, path=path))
    return listing


# =============================================================================
# SYNC WRAPPERS
# =============================================================================
#
# The server runs on worker threads, none of which own an event loop, so
# each call gets a private loop via asyncio.run().
#
# =============================================================================

def scan_tree(root: str, name_filter: NameFilter = None) -> DirNode:
    """Blocking form of scan_tree_async()."""
    return asyncio.run(scan_tree_async(root, name_filter))


def scan_flat(root: str) -> FlatListing:
    """Blocking form of scan_flat_async()."""
    return asyncio.run(scan_flat_async(root))


def iter_tree(node: DirNode) -> Iterator[tuple[str, TreeNode]]:
    """
    Depth-first traversal of a scanned tree.

    Yields ("dir", DirNode) for every directory below node (node itself
    excluded) and ("file", FileLeaf) for every file. Within a directory
    each subdirectory comes first, followed by everything below it; the
    directory's own files come last.
    """
    for child in node.dirs:
        yield "dir", child
        yield from iter_tree(child)
    for leaf in node.files:
        yield "file", leaf


def list_files(root: str, name_filter: NameFilter = None) -> list[str]:
    """Flattened list of every file path under root."""
    return [leaf.path for kind, leaf in iter_tree(scan_tree(root, name_filter)) if kind == "file"]


def is_dir_empty(path: str) -> bool:
    """True when path is a directory with no entries."""
    listing = scan_flat(path)
    return not listing.files and not listing.dirs
