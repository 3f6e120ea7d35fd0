"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket for the lifetime of a keep-alive session.

    read_request()   → one complete request (headers + Content-Length body),
                       leftovers stay buffered for the next call
    send_response()  → sendall(), False if the client went away
    close()          → SHUT_WR, drain, close

Dev-server clients are browsers holding several keep-alive sockets, one
of which usually sits in a live-reload long-poll. A long-poll keeps the
worker busy inside the handler, not inside read_request(), so the read
timeouts below never cut it short.

=============================================================================
STATES
=============================================================================

    NEW → READING → PROCESSING → WRITING → KEEP_ALIVE ─┐
     │       │                                 ▲        │
     │       │                                 └────────┘ next request
     └───────┴──────────────► CLOSING → CLOSED

=============================================================================
"""

import logging
import socket
import time
import uuid
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

HEADER_END = b"\r\n\r\n"


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client socket plus its read buffer and bookkeeping.

    Attributes:
        socket: Accepted client socket.
        address: Client (ip, port).
        id: Short id used in log lines.
        requests_handled: Requests read so far on this socket.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request.

        Returns:
            The raw request bytes, or None when the client closed the
            socket or an idle keep-alive socket timed out.

        Raises:
            TimeoutError: the first request never arrived in time.
            ValueError: the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEADER_END not in self._buffer:
                if not self._fill():
                    return None

            header_end = self._buffer.find(HEADER_END)
            body_start = header_end + len(HEADER_END)
            request_end = body_start + self._content_length(self._buffer[:header_end])

            while len(self._buffer) < request_end:
                if not self._fill():
                    break

            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            self.socket.settimeout(self.timeout)

    def _fill(self) -> bool:
        """Append one recv() to the buffer; False once the peer is gone."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False

        self._buffer += chunk
        self.last_activity = time.time()
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")
        return True

    @staticmethod
    def _content_length(head: bytes) -> int:
        # The parser rejects a malformed Content-Length later; here it only
        # decides how many body bytes to wait for.
        for line in head.decode("latin-1").split("\r\n")[1:]:
            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                try:
                    return max(int(value.strip()), 0)
                except ValueError:
                    return 0
        return 0

    # -------------------------------------------------------------------------
    # Writing / closing
    # -------------------------------------------------------------------------

    def send_response(self, data: bytes) -> bool:
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.last_activity = time.time()
        return True

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def close(self):
        """Half-close, drain whatever the client still sends, then close."""
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING

        with suppress(OSError):
            self.socket.shutdown(socket.SHUT_WR)
        with suppress(OSError):
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        with suppress(OSError):
            self.socket.close()

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
