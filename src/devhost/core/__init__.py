"""
=============================================================================
CORE
=============================================================================

    SocketServer   listening socket + accept loop (main thread)
         │ Connection per client
         ▼
    ThreadPool     workers running DevServer._process_connection
         │
         ▼
    Connection     buffered reads, keep-alive, orderly close

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool, Worker, WorkerState, Task

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
    "Worker",
    "WorkerState",
    "Task",
]
