"""
Project name sanitization.

Names arrive from the URL of /add/:name and /remove/:name, so they are
untrusted. The rule is deliberately small:

    "a;rm -rf /"   → "a"            (everything from the first ";" is cut)
    "my project"   → "my_project"   (each whitespace char becomes "_")
    ""             → ValidationError
    ";x"           → ValidationError (nothing left)

Project chains are consulted before the admin routes, so a project mounted
under /projects or /add would shadow them. mountable() refuses those names.

The request parser has already percent-decoded the path, so "my%20project"
reaches this function as "my project".
"""

import re

from ..errors import ValidationError

_WHITESPACE = re.compile(r"\s")

# First path segment of every admin route
RESERVED_NAMES = frozenset({"add", "remove", "projects", "export"})


def sanitize(name: str) -> str:
    """Return the registry key for a raw project name."""
    if not name:
        raise ValidationError("Project name must not be empty")

    cleaned = _WHITESPACE.sub("_", name.split(";", 1)[0])
    if not cleaned:
        raise ValidationError(f"Project name {name!r} is empty after sanitizing")
    return cleaned


def mountable(name: str) -> str:
    """sanitize(), then refuse names that would shadow an admin route."""
    cleaned = sanitize(name)
    if cleaned in RESERVED_NAMES:
        raise ValidationError(f"Project name {cleaned!r} is reserved for an admin route")
    return cleaned
