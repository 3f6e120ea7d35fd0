"""
=============================================================================
DEVHOST ERRORS
=============================================================================

One exception hierarchy for everything the dev server can report about
projects, pipelines and the filesystem.

    DevServerError
    ├── ValidationError       empty or unusable project name
    ├── ConfigurationError    missing/invalid project directory or build config
    ├── AlreadyInProgress     a second add() for a name whose add() is running
    ├── NotADirectory         a scan entry point is not a directory
    ├── FileSystemError       read/write/stat failure, corrupt archive
    └── InstallError          the dependency-install command failed

HTTP parse errors stay in devhost.http.request (HTTPParseError) because
they carry a status code and never leave the connection loop.

=============================================================================
"""

from typing import Optional


class DevServerError(Exception):
    """Base class for dev server errors."""


class ValidationError(DevServerError):
    """Raised when a project name is empty or sanitizes to nothing."""


class ConfigurationError(DevServerError):
    """
    Raised when a project cannot be built from its on-disk configuration.

    Covers a missing project directory, a missing build config file,
    unparsable YAML and fields of the wrong type.
    """

    def __init__(self, message: str, project: Optional[str] = None):
        super().__init__(message)
        self.project = project


class AlreadyInProgress(DevServerError):
    """Raised when add() is called for a name whose add() or remove() has not settled."""

    def __init__(self, project: str):
        super().__init__(f"Project [{project}] is already being added")
        self.project = project


class NotADirectory(DevServerError):
    """Raised when a tree scan starts from something other than a directory."""

    def __init__(self, path: str):
        super().__init__(f"Path: {path} is not a directory")
        self.path = path


class FileSystemError(DevServerError):
    """
    Raised for any underlying I/O failure.

    The original OSError / tarfile error is chained as __cause__, and the
    offending path (when known) is kept on the exception for log lines.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class InstallError(DevServerError):
    """Raised when the dependency-install command fails for a project."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output
