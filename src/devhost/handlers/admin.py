"""
=============================================================================
ADMIN HANDLER
=============================================================================

The control surface of the dev server. Everything not claimed by a
mounted project falls through to these routes:

    GET /add/:name       build + mount projects/<name> under /<name>/
    GET /remove/:name    unmount it again
    GET /projects        JSON list of mounted projects
    GET /export/:name    projects/<name> as <name>.tar.gz

add/remove always answer 200 with a one-line plain text message; the
reason for a failure only goes to the log:

    /add/shop        →  Build config [shop] has been added
    /add/missing     →  Error adding config [missing]

=============================================================================
"""

import logging
import os
import tempfile

from ..errors import DevServerError, ValidationError
from ..files.archive import pack
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, ok
from ..http.router import Router
from ..projects.names import sanitize
from ..projects.registry import ProjectRegistry

logger = logging.getLogger(__name__)


class AdminHandler:
    """
    Admin routes bound to a ProjectRegistry.

    Usage:
        admin = AdminHandler(registry, "projects")
        admin.register(router)
    """

    def __init__(self, registry: ProjectRegistry, projects_dir: str):
        self.registry = registry
        self.projects_dir = projects_dir

    def register(self, router: Router) -> Router:
        router.add_route("/add/:name", self.add, "GET", name="add")
        router.add_route("/remove/:name", self.remove, "GET", name="remove")
        router.add_route("/projects", self.projects, "GET", name="projects")
        router.add_route("/export/:name", self.export, "GET", name="export")
        return router

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    def add(self, request: HTTPRequest) -> HTTPResponse:
        raw = request.path_params.get("name", "")
        try:
            name = sanitize(raw)
            self.registry.add(name)
        except ValidationError as e:
            logger.warning(f"Rejected project name {raw!r}: {e}")
            return ok(f"Error adding config [{raw}]")
        except Exception as e:
            logger.exception(f"Error adding config [{name}]: {e}")
            return ok(f"Error adding config [{name}]")
        return ok(f"Build config [{name}] has been added")

    def remove(self, request: HTTPRequest) -> HTTPResponse:
        raw = request.path_params.get("name", "")
        try:
            name = sanitize(raw)
            self.registry.remove(name)
        except ValidationError as e:
            logger.warning(f"Rejected project name {raw!r}: {e}")
            return ok(f"Error removing config [{raw}]")
        except Exception as e:
            logger.exception(f"Error removing config [{name}]: {e}")
            return ok(f"Error removing config [{name}]")
        return ok(f"Build config [{name}] has been removed")

    def projects(self, request: HTTPRequest) -> HTTPResponse:
        return ok(self.registry.names())

    def export(self, request: HTTPRequest) -> HTTPResponse:
        """Pack projects/<name> into a gzip tar and send it as a download."""
        raw = request.path_params.get("name", "")
        try:
            name = sanitize(raw)
        except ValidationError:
            return ok(f"Error exporting project [{raw}]")

        source = os.path.join(self.projects_dir, name)
        if not os.path.isdir(source):
            return ok(f"Project [{name}] not found")

        fd, archive_path = tempfile.mkstemp(prefix=f"{name}-", suffix=".tar.gz")
        os.close(fd)
        try:
            count = pack(source, archive_path)
            with open(archive_path, "rb") as f:
                content = f.read()
        except (DevServerError, OSError) as e:
            logger.exception(f"Error exporting project [{name}]: {e}")
            return ok(f"Error exporting project [{name}]")
        finally:
            os.remove(archive_path)

        logger.info(f"Exported project [{name}]: {count} files, {len(content)} bytes")
        return (
            ResponseBuilder()
            .attachment(content, f"{name}.tar.gz")
            .no_cache()
            .build()
        )


def admin_router(registry: ProjectRegistry, projects_dir: str) -> Router:
    """Router with every admin route registered."""
    return AdminHandler(registry, projects_dir).register(Router())
