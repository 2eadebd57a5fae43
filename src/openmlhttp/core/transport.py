"""
=============================================================================
SECURE TRANSPORT
=============================================================================

The Connection never touches a socket directly. It talks to a Transport,
a minimal byte-stream interface:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       Transport interface                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   connect(host, port)   open the stream (TCP + TLS handshake)        │
    │   write(data)           send ALL bytes, blocking                     │
    │   read() -> bytes       whatever is available; b"" = end of stream   │
    │   close()               release the socket, idempotent               │
    │   connected             True between connect() and close()/EOF       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

TLSTransport implements it with the standard library socket and ssl
modules. Tests substitute an in-memory transport.

Errors are the plain socket errors (OSError, socket.timeout,
ssl.SSLError); the Connection translates them into ConnectError.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging
import socket
import ssl


logger = logging.getLogger(__name__)


class Transport(ABC):
    """Abstract encrypted byte stream to one host."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while the stream is open."""

    @abstractmethod
    def connect(self, host: str, port: int) -> None:
        """Open the stream, closing any previous one first."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Send all of data or raise."""

    @abstractmethod
    def read(self) -> bytes:
        """Return available bytes, blocking until at least one arrives; b"" at end of stream."""

    @abstractmethod
    def close(self) -> None:
        """Close the stream. Safe to call when already closed."""


class TLSTransport(Transport):
    """
    TLS over TCP using the standard library.

    Args:
        connect_timeout: Seconds allowed for TCP connect plus handshake.
        read_timeout: Socket timeout for each read/write (None = blocking).
        buffer_size: Maximum bytes returned by one read().
        verify: Verify the server certificate and host name.
        context: Custom SSLContext (overrides verify).
    """

    def __init__(
        self,
        connect_timeout: float = 30.0,
        read_timeout: Optional[float] = 60.0,
        buffer_size: int = 8192,
        verify: bool = True,
        context: Optional[ssl.SSLContext] = None,
    ):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.buffer_size = buffer_size

        if context is None:
            context = ssl.create_default_context()
            if not verify:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
        self._context = context
        self._socket: Optional[ssl.SSLSocket] = None

    @property
    def connected(self) -> bool:
        return self._socket is not None

    def connect(self, host: str, port: int) -> None:
        self.close()

        raw = socket.create_connection((host, port), timeout=self.connect_timeout)
        try:
            # The handshake runs inside wrap_socket, under connect_timeout
            tls = self._context.wrap_socket(raw, server_hostname=host)
        except BaseException:
            raw.close()
            raise

        tls.settimeout(self.read_timeout)
        self._socket = tls
        logger.debug(f"TLS connection to {host}:{port} established ({tls.version()})")

    def write(self, data: bytes) -> None:
        if self._socket is None:
            raise ConnectionError("Transport is not connected")
        self._socket.sendall(data)

    def read(self) -> bytes:
        if self._socket is None:
            return b""
        try:
            data = self._socket.recv(self.buffer_size)
        except ssl.SSLZeroReturnError:
            # Clean TLS close_notify from the peer
            data = b""
        if not data:
            self.close()
        return data

    def close(self) -> None:
        if self._socket is None:
            return
        sock, self._socket = self._socket, None
        try:
            sock.close()
        except OSError:
            pass  # Already gone
