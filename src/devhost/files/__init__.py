"""
Filesystem layer: concurrent directory scans and the tar.gz codec used to
bootstrap and export project source trees.
"""

from .tree import (
    DirEntry,
    DirNode,
    FileLeaf,
    FlatListing,
    is_dir_empty,
    iter_tree,
    list_files,
    scan_flat,
    scan_flat_async,
    scan_tree,
    scan_tree_async,
)
from .archive import pack, repack_stripping_root, unpack

__all__ = [
    "DirEntry",
    "DirNode",
    "FileLeaf",
    "FlatListing",
    "is_dir_empty",
    "iter_tree",
    "list_files",
    "scan_flat",
    "scan_flat_async",
    "scan_tree",
    "scan_tree_async",
    "pack",
    "repack_stripping_root",
    "unpack",
]
