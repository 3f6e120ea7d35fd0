"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one HTTP/1.1 request into an HTTPRequest.

    GET /shop/bundle.js?v=2 HTTP/1.1\r\n        ← request line
    Host: localhost:8080\r\n                    ← headers (names lowercased)
    If-None-Match: "3f2a..."\r\n
    \r\n                                        ← end of headers
    <Content-Length bytes of body>

=============================================================================
MOUNTED REQUESTS
=============================================================================

Project pipelines live under a prefix. When the Router Front hands a
request to a project's middleware it passes a COPY whose path is relative
to the mount and whose base_path records the prefix:

    client asks for         /shop/assets/logo.svg
    middleware sees         path="/assets/logo.svg"  base_path="/shop"
    request.full_path       "/shop/assets/logo.svg"

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any
from urllib.parse import urlsplit, parse_qs, unquote
import re
import json


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code to answer with: 400 for bad syntax, 405 for an
    unknown method, 413 for an oversized request, 505 for a bad version.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Headers are stored with lowercase names. query_params maps each name
    to every value it was given ("?a=1&a=2" → {"a": ["1", "2"]}).
    path_params is filled by the admin Router (":name" segments).
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)
    base_path: str = ""
    raw: bytes = field(default=b"", repr=False)

    _body_json: Optional[Any] = field(default=None, repr=False)

    @property
    def full_path(self) -> str:
        """Path as the client sent it, mount prefix included."""
        if not self.base_path:
            return self.path
        return self.base_path if self.path == "/" else self.base_path + self.path

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def json(self) -> Any:
        """Body decoded as JSON (cached). Raises HTTPParseError if invalid."""
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        # HTTP/1.1 keeps the connection unless told to close; 1.0 the reverse.
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def mounted(self, prefix: str, sub_path: str) -> "HTTPRequest":
        """Copy of this request re-rooted under a mount prefix."""
        return replace(
            self,
            path=sub_path or "/",
            base_path=self.base_path + prefix,
            path_params=dict(self.path_params),
        )


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

    Steps: size check (413), split headers from body at CRLFCRLF, parse the
    request line (400/405/505), parse headers, slice the body by
    Content-Length.

    Paths are percent-decoded here, so "/add/my%20app" arrives at the
    admin handler as "/add/my app". Any ".." in the decoded path is
    rejected outright.
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Raises:
            HTTPParseError: the request is malformed or too large.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()
        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)
        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        # urlsplit keeps ";" in the path ("/add/a;b" must reach the router intact).
        parsed = urlsplit(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: value" lines into a dict with lowercase names.

        Obsolete folded lines (leading space/tab) extend the previous
        header; repeated headers are joined with ", ".
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name = match.group(1).strip().lower()
            value = match.group(2).strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """One-shot parse with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
