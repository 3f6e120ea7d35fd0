"""
=============================================================================
HANDLERS
=============================================================================

    AdminHandler / admin_router()
        /add/:name, /remove/:name, /projects, /export/:name

Project content is not served by a handler: each project's middleware
chain answers under its own prefix, and only requests no chain claims
reach these routes.

=============================================================================
"""

from .admin import AdminHandler, admin_router

__all__ = [
    "AdminHandler",
    "admin_router",
]
