"""
=============================================================================
HTTP LAYER
=============================================================================

    request.py       raw bytes → HTTPRequest (RequestParser)
    response.py      HTTPResponse, ResponseBuilder, one-liner helpers
    status_codes.py  HTTPStatus
    mime_types.py    Content-Type lookup for build output
    router.py        pattern Router for the admin endpoints
    front.py         RouterFront: the live, mutable prefix table that
                     project pipelines are mounted into

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    redirect,
    not_modified,
    bad_request,
    not_found,
    method_not_allowed,
    gone,
    service_unavailable,
    internal_error,
)
from .router import Router, Route
from .front import RouterFront, Layer, Mount
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "redirect",
    "not_modified",
    "bad_request",
    "not_found",
    "method_not_allowed",
    "gone",
    "service_unavailable",
    "internal_error",
    "Router",
    "Route",
    "RouterFront",
    "Layer",
    "Mount",
    "HTTPStatus",
    "get_mime_type",
    "get_content_type",
]
