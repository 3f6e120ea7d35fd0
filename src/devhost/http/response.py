"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

HTTPResponse is the value every handler and middleware returns.
ResponseBuilder is the fluent way to make one:

    (ResponseBuilder()
        .status(HTTPStatus.OK)
        .file(bundle_bytes, "bundle.js")
        .etag(build_hash)
        .no_cache()
        .build())

to_bytes() serializes the status line, headers and body, filling in
Content-Length, Date and Server when the handler did not set them:

    HTTP/1.1 200 OK\r\n
    Content-Type: text/javascript; charset=utf-8\r\n
    ETag: "9c1f0e..."\r\n
    Content-Length: 1832\r\n
    Date: Mon, 19 Oct 2026 10:00:00 GMT\r\n
    Server: devhost/1.0\r\n
    \r\n
    <body>

The admin surface answers with text() bodies; unknown routes and crashes
keep the JSON {"error": ...} shape.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
from email.utils import format_datetime
import json

from .status_codes import HTTPStatus
from .mime_types import get_content_type

DEFAULT_SERVER_NAME = "devhost/1.0"


@dataclass
class HTTPResponse:
    """A response ready to be serialized onto a connection."""

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def text(self) -> str:
        """Body decoded as UTF-8 (handy in tests and logs)."""
        return self.body.decode("utf-8", errors="replace")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Serialize for socket.sendall()."""
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n" + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

    Every setter returns self; build() produces the response and
    to_bytes() builds and serializes in one go.
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""
        self._server_name = server_name

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        return self.content_type(content_type).body(text)

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        payload = json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)
        return self.content_type("application/json; charset=utf-8").body(payload)

    def file(self, content: bytes, filename: str) -> "ResponseBuilder":
        """Raw bytes with Content-Type guessed from filename."""
        return self.content_type(get_content_type(filename)).body(content)

    def attachment(self, content: bytes, filename: str) -> "ResponseBuilder":
        """Like file(), but asks the browser to save it as filename."""
        self.header("Content-Disposition", f'attachment; filename="{filename}"')
        return self.file(content, filename)

    def etag(self, tag: str) -> "ResponseBuilder":
        return self.header("ETag", f'"{tag}"')

    def no_cache(self) -> "ResponseBuilder":
        # Build output changes on every save; browsers must revalidate.
        return self.header("Cache-Control", "no-cache")

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        return self.header("Location", location)

    def close_connection(self) -> "ResponseBuilder":
        return self.header("Connection", "close")

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=dict(self._headers), body=self._body)

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


def format_http_date(dt: datetime) -> str:
    """RFC 7231 HTTP-date, always GMT: "Mon, 19 Oct 2026 10:00:00 GMT"."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


# =============================================================================
# ONE-LINERS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK; dict/list become JSON, str becomes text/plain, bytes stay raw.
    """
    builder = ResponseBuilder()
    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def not_modified(tag: Optional[str] = None) -> HTTPResponse:
    builder = ResponseBuilder().status(HTTPStatus.NOT_MODIFIED)
    if tag:
        builder.etag(tag)
    return builder.build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.BAD_REQUEST).json({"error": message}).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).json({"error": message}).build()


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def gone(message: str = "Gone") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.GONE).json({"error": message}).build()


def service_unavailable(message: str = "Service Unavailable") -> HTTPResponse:
    return (ResponseBuilder()
        .status(HTTPStatus.SERVICE_UNAVAILABLE)
        .header("Retry-After", "1")
        .json({"error": message})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).json({"error": message}).build()
