"""
pytest configuration and fixtures.
"""

import socket
import time
from typing import List, Optional, Sequence, Tuple, Union

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from openmlhttp import Connection, ConnectionConfig
from openmlhttp.core.transport import Transport


def http_response(
    status: int = 200,
    body: bytes = b"{}",
    reason: str = "OK",
    headers: Sequence[Tuple[str, str]] = (("Content-Type", "application/json"),),
    content_length: bool = True,
) -> bytes:
    """Raw bytes of a server response."""
    lines = [f"HTTP/1.1 {status} {reason}".rstrip()]
    lines += [f"{name}: {value}" for name, value in headers]
    if content_length:
        lines.append(f"Content-Length: {len(body)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1") + body


ScriptEntry = Union[bytes, BaseException]


class ScriptedTransport(Transport):
    """
    In-memory transport replaying canned responses.

    Every write() queues the next scripted response; read() hands it out
    in chunks of chunk_size bytes (all at once when None) and returns b""
    once it is exhausted. A scripted exception is raised from read()
    instead.
    """

    def __init__(
        self,
        responses: Sequence[ScriptEntry] = (),
        chunk_size: Optional[int] = None,
        read_delay: float = 0.0,
    ):
        self.responses: List[ScriptEntry] = list(responses)
        self.chunk_size = chunk_size
        self.read_delay = read_delay
        self.connect_error: Optional[BaseException] = None

        self.connects: List[Tuple[str, int]] = []
        self.writes: List[bytes] = []
        self.events: List[Tuple[str, bytes]] = []
        self.closes = 0

        self._connected = False
        self._pending: List[ScriptEntry] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self, host: str, port: int) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self._connected = True
        self._pending = []
        self.connects.append((host, port))

    def write(self, data: bytes) -> None:
        if not self._connected:
            raise ConnectionError("not connected")
        self.writes.append(data)
        self.events.append(("write", data))
        if self.responses:
            entry = self.responses.pop(0)
            if isinstance(entry, BaseException):
                self._pending = [entry]
            else:
                size = self.chunk_size or max(len(entry), 1)
                self._pending = [entry[i:i + size] for i in range(0, len(entry), size)]

    def read(self) -> bytes:
        if self.read_delay:
            time.sleep(self.read_delay)
        if self._pending:
            chunk = self._pending.pop(0)
            if isinstance(chunk, BaseException):
                raise chunk
            self.events.append(("read", chunk))
            return chunk
        self._connected = False
        return b""

    def close(self) -> None:
        self._connected = False
        self._pending = []
        self.closes += 1


@pytest.fixture
def transport() -> ScriptedTransport:
    """Empty scripted transport; tests append to .responses."""
    return ScriptedTransport()


@pytest.fixture
def config() -> ConnectionConfig:
    """Default test connection configuration."""
    return ConnectionConfig(
        connect_timeout=5.0,
        read_timeout=5.0,
        response_timeout=10.0,
    )


@pytest.fixture
def connection(config: ConnectionConfig, transport: ScriptedTransport) -> Connection:
    """Connection to the production target over the scripted transport."""
    return Connection(config=config, transport=transport)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove OPENML_* variables so defaults apply."""
    for name in ("OPENML_HOST", "OPENML_PORT", "OPENML_PREFIX", "OPENML_API_KEY",
                 "OPENML_TIMEOUT", "OPENML_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
