"""
=============================================================================
ARCHIVE CODEC
=============================================================================

Gzip-compressed tar archives for project templates and project exports.

    pack(src_dir, dest)              directory  ──►  .tar.gz
    unpack(archive, dest_dir)        .tar.gz    ──►  directory
    repack_stripping_root(archive)   .tar.gz    ──►  .tar.gz_tmp without
                                                     the leading "root/"

=============================================================================
STREAMING AND INTEGRITY
=============================================================================

A template archive is read exactly once, front to back: GzipFile feeds
tarfile's stream mode ("r|"), so nothing seeks. tarfile stops at the
end-of-archive blocks, which leaves the gzip trailer unread; the reader is
drained to EOF afterwards so GzipFile checks CRC32 and ISIZE. A flipped
bit, a truncated stream or a bad trailer surfaces as the first error any
stage hits (BadGzipFile, zlib.error, EOFError, tarfile.ReadError, or an
OSError from the write side). Whatever was written before the error stays
on disk: extraction is not transactional and callers that need a clean
directory remove it and retry.

=============================================================================
ROOT STRIPPING
=============================================================================

Archives produced by "tar czf app.tar.gz app/" carry a common root:

    app                 → dropped (no "/" in the name)
    app/index.html      → index.html
    app/src/main.js     → src/main.js

=============================================================================
NORMALIZATION
=============================================================================

Permission bits and ownership are not part of the round trip: files come
out 0644, directories 0755, owner 0/0. Links, devices and FIFOs are never
extracted, and nothing may land outside the destination directory.

=============================================================================
"""

import gzip
import logging
import os
import shutil
import tarfile
import zlib
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from ..errors import FileSystemError
from .tree import iter_tree, scan_tree

logger = logging.getLogger(__name__)

FILE_MODE = 0o644
DIR_MODE = 0o755

# Suffix appended to an archive path by repack_stripping_root()
REPACK_SUFFIX = "_tmp"

_ARCHIVE_ERRORS = (tarfile.TarError, gzip.BadGzipFile, zlib.error, OSError, EOFError)

CHUNK_SIZE = 64 * 1024


@contextmanager
def _reading(archive_path: str, compressed: bool) -> Iterator[tarfile.TarFile]:
    """Open a tar stream; on a clean exit, verify the rest of the file."""
    raw = gzip.open(archive_path, "rb") if compressed else open(archive_path, "rb")
    with raw:
        with tarfile.open(fileobj=raw, mode="r|") as tar:
            yield tar
        # Padding after the end-of-archive blocks, then the gzip trailer
        while raw.read(CHUNK_SIZE):
            pass


def _write_mode(compressed: bool) -> str:
    return "w:gz" if compressed else "w"


def _safe_target(dest_root: str, name: str) -> Optional[str]:
    """Resolve an entry name under dest_root, or None if it would escape."""
    name = name.replace("\\", "/").lstrip("/")
    if not name or name in (".", "./"):
        return None
    target = os.path.realpath(os.path.join(dest_root, name))
    if os.path.commonpath([dest_root, target]) != dest_root:
        return None
    return target


def _strip_first_segment(name: str) -> str:
    _, sep, rest = name.partition("/")
    return rest if sep else ""


def _normalize_member(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    info.mode = DIR_MODE if info.isdir() else FILE_MODE
    return info


# =============================================================================
# UNPACK
# =============================================================================

def unpack(archive_path: str, dest_dir: str, compressed: bool = True) -> int:
    """
    Stream-extract an archive into dest_dir, creating it if needed.

    Args:
        archive_path: Path to the .tar.gz (or plain .tar) file.
        dest_dir: Extraction target.
        compressed: False for an uncompressed tar stream.

    Returns:
        Number of regular files written.

    Raises:
        FileSystemError: corrupt stream, unreadable archive or failed
                         write. Partial output is left in place.
    """
    written = 0
    try:
        os.makedirs(dest_dir, exist_ok=True)
        dest_root = os.path.realpath(dest_dir)

        with _reading(archive_path, compressed) as tar:
            for member in tar:
                target = _safe_target(dest_root, member.name)
                if target is None:
                    if member.name not in ("", ".", "./"):
                        logger.warning(f"Skipping unsafe archive entry: {member.name}")
                    continue

                if member.isdir():
                    os.makedirs(target, exist_ok=True)
                    os.chmod(target, DIR_MODE)
                elif member.isfile():
                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    source = tar.extractfile(member)
                    with open(target, "wb") as out:
                        shutil.copyfileobj(source, out)
                    os.chmod(target, FILE_MODE)
                    written += 1
                else:
                    logger.debug(f"Skipping non-regular archive entry: {member.name}")
    except _ARCHIVE_ERRORS as e:
        raise FileSystemError(f"Failed to unpack {archive_path}: {e}", archive_path) from e

    logger.debug(f"Unpacked {written} files from {archive_path} into {dest_dir}")
    return written


# =============================================================================
# REPACK
# =============================================================================

def repack_stripping_root(archive_path: str, compressed: bool = True) -> str:
    """
    Re-stream an archive removing the first path segment of every entry.

    Entries whose name has no "/" (the bare root directory) come out empty
    and are dropped; their content, if any, is skipped.

    Returns:
        Path of the new archive: archive_path + "_tmp". Always gzip.
    """
    out_path = f"{archive_path}{REPACK_SUFFIX}"
    kept = dropped = 0
    try:
        with _reading(archive_path, compressed) as src, \
                tarfile.open(out_path, _write_mode(True)) as dst:
            for member in src:
                name = _strip_first_segment(member.name)
                if not name:
                    dropped += 1
                    continue

                member.name = name
                if member.islnk():
                    member.linkname = _strip_first_segment(member.linkname)

                if member.isfile():
                    dst.addfile(member, src.extractfile(member))
                else:
                    dst.addfile(member)
                kept += 1
    except _ARCHIVE_ERRORS as e:
        if os.path.exists(out_path):
            os.remove(out_path)
        raise FileSystemError(f"Failed to repack {archive_path}: {e}", archive_path) from e

    logger.debug(f"Repacked {archive_path} -> {out_path} ({kept} kept, {dropped} dropped)")
    return out_path


# =============================================================================
# PACK
# =============================================================================

def _selected(rel: str, entries: Optional[set[str]]) -> bool:
    if entries is None:
        return True
    return any(rel == e or rel.startswith(e + "/") for e in entries)


def pack(
    src_dir: str,
    dest_archive_path: str,
    entries: Optional[Iterable[str]] = None,
    compressed: bool = True,
) -> int:
    """
    Write src_dir into a tar archive, names relative to src_dir.

    Args:
        src_dir: Directory to archive. Walked with scan_tree(), so members
                 are written in sorted order and symlinks are followed.
        dest_archive_path: Output file; its parent is created if missing.
        entries: Optional relative paths to include. A directory entry
                 includes everything below it.
        compressed: False writes a plain tar.

    Returns:
        Number of regular files written.

    Raises:
        NotADirectory: src_dir is not a directory.
        FileSystemError: a listed entry is missing, or reading/writing failed.
    """
    tree = scan_tree(src_dir)
    root = tree.path.rstrip("/")

    selected = None
    if entries is not None:
        selected = {e.replace("\\", "/").strip("/") for e in entries}
        missing = [e for e in sorted(selected) if not os.path.exists(os.path.join(root, e))]
        if missing:
            raise FileSystemError(f"Cannot pack missing entries: {', '.join(missing)}", src_dir)

    written = 0
    try:
        parent = os.path.dirname(os.path.abspath(dest_archive_path))
        os.makedirs(parent, exist_ok=True)

        with tarfile.open(dest_archive_path, _write_mode(compressed), dereference=True) as tar:
            for kind, node in iter_tree(tree):
                rel = node.path[len(root) + 1:]
                if not _selected(rel, selected):
                    continue
                tar.add(node.path, arcname=rel, recursive=False, filter=_normalize_member)
                if kind == "file":
                    written += 1
    except _ARCHIVE_ERRORS as e:
        raise FileSystemError(f"Failed to pack {src_dir}: {e}", src_dir) from e

    logger.debug(f"Packed {written} files from {src_dir} into {dest_archive_path}")
    return written
