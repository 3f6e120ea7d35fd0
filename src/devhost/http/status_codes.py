"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Only the codes the dev server can actually send:

    200  build output, admin replies, live-reload answers
    301  302  redirect() helper
    304  build asset unchanged since the client's ETag
    400  405  413  malformed, wrong method, oversized
    404  no project or admin route, or no such build file
    408  client too slow to send its request
    410  live-reload endpoint of a project that has been removed
    500  handler crashed
    503  worker pool saturated, or build not ready in time
    505  request line names a version other than 1.0 or 1.1

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    Status codes usable as plain integers, each carrying its reason phrase.

        >>> HTTPStatus.GONE == 410
        True
        >>> HTTPStatus.GONE.phrase
        'Gone'
    """

    def __new__(cls, code: int, phrase: str):
        member = int.__new__(cls, code)
        member._value_ = code
        member.phrase = phrase
        return member

    OK = 200, "OK"

    MOVED_PERMANENTLY = 301, "Moved Permanently"
    FOUND = 302, "Found"
    NOT_MODIFIED = 304, "Not Modified"

    BAD_REQUEST = 400, "Bad Request"
    NOT_FOUND = 404, "Not Found"
    METHOD_NOT_ALLOWED = 405, "Method Not Allowed"
    REQUEST_TIMEOUT = 408, "Request Timeout"
    GONE = 410, "Gone"
    PAYLOAD_TOO_LARGE = 413, "Payload Too Large"

    INTERNAL_SERVER_ERROR = 500, "Internal Server Error"
    SERVICE_UNAVAILABLE = 503, "Service Unavailable"
    HTTP_VERSION_NOT_SUPPORTED = 505, "HTTP Version Not Supported"

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_error(self) -> bool:
        return self >= 400


def get_status_phrase(code: int) -> str:
    """Reason phrase for a raw integer code, "Unknown" when unlisted."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"
