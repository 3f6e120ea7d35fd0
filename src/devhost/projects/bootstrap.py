"""
=============================================================================
PROJECT BOOTSTRAPPER
=============================================================================

Gets projects/<name> ready before the registry builds it:

    prepare("shop")
        │
        ├── projects/shop missing and a template is configured?
        │       template is a directory  → materialize()          (copy)
        │       template is a .tar.gz    → materialize_archive()  (repack + unpack)
        │
        └── install command configured?
                run it with cwd=projects/shop   (e.g. "npm install")

Neither step is transactional. A copy or extraction that fails halfway
leaves whatever it had written; remove the directory and retry.

=============================================================================
"""

import logging
import os
import shlex
import shutil
import subprocess
from typing import Optional

from ..errors import FileSystemError, InstallError
from ..files.archive import repack_stripping_root, unpack
from ..files.tree import iter_tree, scan_tree

logger = logging.getLogger(__name__)


def _relative(root: str, path: str) -> str:
    return path[len(root.rstrip("/")) + 1:]


def materialize(template_dir: str, target_dir: str) -> int:
    """
    Recursively copy template_dir into target_dir.

    Directories are created first, then each file is copied after its
    parent is ensured.

    Returns:
        Number of files copied.

    Raises:
        FileSystemError: the template is missing/unreadable or a write
                         failed. Partial output stays in place.
    """
    if not os.path.exists(template_dir):
        raise FileSystemError(f"Template not found: {template_dir}", template_dir)

    tree = scan_tree(template_dir)
    copied = 0
    try:
        os.makedirs(target_dir, exist_ok=True)
        for kind, node in iter_tree(tree):
            target = os.path.join(target_dir, _relative(tree.path, node.path))
            if kind == "dir":
                os.makedirs(target, exist_ok=True)
            else:
                os.makedirs(os.path.dirname(target), exist_ok=True)
                shutil.copyfile(node.path, target)
                copied += 1
    except OSError as e:
        raise FileSystemError(f"Failed to copy {template_dir} to {target_dir}: {e}", target_dir) from e

    logger.info(f"Copied {copied} files from {template_dir} to {target_dir}")
    return copied


def materialize_archive(archive_path: str, target_dir: str, strip_root: bool = True) -> int:
    """
    Unpack a template archive into target_dir.

    With strip_root (the default) the archive's single top-level directory
    is removed first, via a temporary "<archive>_tmp" copy that is deleted
    afterwards.
    """
    if not os.path.isfile(archive_path):
        raise FileSystemError(f"Template archive not found: {archive_path}", archive_path)

    if not strip_root:
        return unpack(archive_path, target_dir)

    stripped = repack_stripping_root(archive_path)
    try:
        return unpack(stripped, target_dir)
    finally:
        try:
            os.remove(stripped)
        except OSError as e:
            logger.warning(f"Could not remove temporary archive {stripped}: {e}")


def install(project_dir: str, command: Optional[str], timeout: Optional[float] = None) -> None:
    """
    Run the dependency-install command inside project_dir.

    Raises:
        InstallError: the command is missing, times out or exits non-zero.
    """
    if not command:
        return

    args = shlex.split(command)
    logger.info(f"Installing dependencies in {project_dir}: {command}")
    try:
        subprocess.run(
            args,
            cwd=project_dir,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise InstallError(f"Install command not found: {args[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise InstallError(f"Install command timed out after {timeout}s: {command}") from e
    except subprocess.CalledProcessError as e:
        output = (e.stderr or e.stdout or "").strip()
        raise InstallError(
            f"Install command failed with exit code {e.returncode}: {command}",
            returncode=e.returncode,
            output=output,
        ) from e


class ProjectBootstrapper:
    """
    Prepares project directories under projects_dir.

    Args:
        projects_dir: Root holding one directory per project.
        template_path: Directory or .tar.gz used for projects that do not
                       exist yet. None disables materializing.
        install_command: Shell-style command run in the project directory
                         on every add ("npm install"). None skips it.
        install_timeout: Seconds before the install command is killed.
    """

    def __init__(
        self,
        projects_dir: str,
        template_path: Optional[str] = None,
        install_command: Optional[str] = None,
        install_timeout: Optional[float] = None,
    ):
        self.projects_dir = projects_dir
        self.template_path = template_path
        self.install_command = install_command
        self.install_timeout = install_timeout

    def project_dir(self, name: str) -> str:
        return os.path.join(self.projects_dir, name)

    def prepare(self, name: str) -> bool:
        """
        Materialize (if needed) and install projects/<name>.

        Returns:
            True if the project directory was created from the template.
        """
        target = self.project_dir(name)
        created = False

        if self.template_path and not os.path.exists(target):
            logger.info(f"Creating project [{name}] from {self.template_path}")
            if os.path.isdir(self.template_path):
                materialize(self.template_path, target)
            else:
                materialize_archive(self.template_path, target)
            created = True

        if self.install_command and os.path.isdir(target):
            logger.info(f"Installing dependencies for [{name}]")
            install(target, self.install_command, self.install_timeout)

        return created
