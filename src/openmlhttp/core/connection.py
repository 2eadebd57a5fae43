"""
=============================================================================
OPENML CONNECTION
=============================================================================

One persistent HTTPS connection to the OpenML REST API, shared by every
thread of the process that talks to OpenML.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    One exchange (get / post / delete)                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   parse params ──► ParameterError?  (before any network traffic)     │
    │        │                                                             │
    │   ┌────▼─────────────── lock held ──────────────────────────────┐   │
    │   │  append api_key                                              │   │
    │   │  connect if needed          ──► ConnectError                 │   │
    │   │  build request bytes                                         │   │
    │   │  transport.write()          ──► ConnectError                 │   │
    │   │  loop: transport.read()                                      │   │
    │   │        ResponseParser.parse ──► ProtocolError / Timeout      │   │
    │   │  close transport if the server asked for it                  │   │
    │   └────┬─────────────────────────────────────────────────────────┘   │
    │        │                                                             │
    │   2xx ──► json.loads(body)      ──► ResponseParseError + disconnect  │
    │   else ──► int(status)              (logical failure, not raised)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONCURRENCY
=============================================================================

A single threading.Lock is held for the whole build/send/receive cycle.
Two threads calling get() at once never interleave bytes on the stream;
the second simply waits. There is no pipelining and no cancellation once
a request is on the wire: wrap the call in your own timeout if you need
one. Changing the target or the API key takes the same lock, so an
exchange never sees a half-updated host/port.

=============================================================================
NON-2xx REPLIES
=============================================================================

A well-formed reply with status 404 (or any other non-2xx status) is not
an exception. get/post/delete return the status code as an int, and the
caller branches on the type of the result. This is deliberate and
callers depend on it: a raised exception always means the server could
not be reached or did not speak valid HTTP/JSON.

=============================================================================
LIFETIME
=============================================================================

There is no module-level connection. Create one where your program
starts and pass it to whatever needs it:

    with Connection(config=ConnectionConfig.from_env()) as conn:
        datasets = conn.get("/data/list/limit/10")

=============================================================================
"""

from typing import Optional
import dataclasses
import logging
import socket
import threading
import time
import uuid

from ..config import ConnectionConfig
from ..exceptions import ConnectError, ProtocolError, ResponseParseError, TransportTimeout
from ..http.params import ParamList, PlainField, parse_params
from ..http.request import HTTPRequest, RequestBuilder
from ..http.response import HTTPResponse, JSONValue, ResponseParser
from .transport import TLSTransport, Transport


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("openmlhttp.access")

# Name of the authentication parameter appended to every request
API_KEY_PARAM = "api_key"


class Connection:
    """
    HTTPS connection to the OpenML JSON REST API.

    Args:
        host: Target host. Omitted = the host from config (production by
            default).
        port: Target port, used together with host.
        prefix: REST path prefix, used together with host.
        config: Timeouts, limits and the default target.
        transport: Byte stream to use; a TLSTransport built from config
            when omitted.

    Examples:
        conn = Connection()                                  # production
        conn = Connection("localhost", 8443, "/api/v1/json") # custom
        conn.key = "0123456789abcdef"
        result = conn.get("/task/59")
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 443,
        prefix: str = "",
        *,
        config: Optional[ConnectionConfig] = None,
        transport: Optional[Transport] = None,
    ):
        config = config if config is not None else ConnectionConfig()
        if host is not None:
            config = dataclasses.replace(config, host=host, port=port, prefix=prefix)
        config.validate()

        self.config = config
        self.id = str(uuid.uuid4())[:8]

        self._host = config.host
        self._port = config.port
        self._prefix = config.prefix
        self._key = config.api_key

        self._transport = transport if transport is not None else TLSTransport(
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            buffer_size=config.buffer_size,
            verify=config.verify_tls,
        )
        self._read_buffer = bytearray()
        self._lock = threading.Lock()

        self.exchanges = 0
        self.last_activity = 0.0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def key(self) -> str:
        """The OpenML API key ("" when unauthenticated)."""
        return self._key

    @key.setter
    def key(self, api_key: str) -> None:
        with self._lock:
            self._key = api_key

    def set_key(self, api_key: str) -> None:
        self.key = api_key

    @property
    def is_connected(self) -> bool:
        return self._transport.connected

    def __repr__(self) -> str:
        return f"<Connection {self.id} https://{self._host}:{self._port}{self._prefix}>"

    # =========================================================================
    # TARGET SWITCHING
    # =========================================================================

    def set_target(self, host: str, port: int = 443, prefix: str = "") -> None:
        """
        Redirect all further traffic to another host.

        Waits for an in-flight exchange to finish, then drops the open
        transport so the next call connects to the new target.
        """
        if not host:
            raise ValueError("host must not be empty")
        if not 0 < port < 65536:
            raise ValueError(f"Invalid port: {port}. Must be 1-65535.")
        if prefix and not prefix.startswith("/"):
            raise ValueError(f"prefix must be empty or start with '/': {prefix!r}")
        with self._lock:
            self._host, self._port, self._prefix = host, port, prefix
            self._disconnect("target changed")
        logger.info(f"[{self.id}] Target set to {host}:{port}{prefix}")

    def enable_test_mode(self) -> None:
        """Redirect all traffic to the OpenML test server."""
        self.set_target(self.config.test_host, self.config.test_port, self.config.test_prefix)

    # =========================================================================
    # PUBLIC REST OPERATIONS
    # =========================================================================

    def get(self, path: str, params: ParamList = ()) -> JSONValue:
        """
        Send a GET request, parameters URL-encoded in the query string.

        Args:
            path: REST path below the prefix, e.g. "/data/list".
            params: Ordered (name, value) pairs.

        Returns:
            The JSON reply on 2xx; the status code as an int otherwise.

        Raises:
            ParameterError: Malformed parameters; nothing was sent.
            ConnectError: Connection failed or broke (TransportTimeout on
                timeouts).
            ProtocolError: The reply was not valid HTTP.
            ResponseParseError: A 2xx reply whose body is not JSON.
        """
        return self._call("GET", path, params)

    def post(self, path: str, params: ParamList = ()) -> JSONValue:
        """
        Send a POST request.

        Parameters travel as an application/x-www-form-urlencoded body,
        or as multipart/form-data when any name carries a file marker
        ("name|mime-type" or "name|mime-type|filename"). For file fields
        the value is the file content.

        Returns and raises like get().
        """
        return self._call("POST", path, params)

    def delete(self, path: str, params: ParamList = ()) -> JSONValue:
        """Send a DELETE request. Returns and raises like get()."""
        return self._call("DELETE", path, params)

    del_ = delete

    # =========================================================================
    # EXCHANGE
    # =========================================================================

    def _call(self, method: str, path: str, params: ParamList) -> JSONValue:
        fields = parse_params(params)
        if not path.startswith("/"):
            path = "/" + path

        with self._lock:
            if self._key:
                fields.append(PlainField(API_KEY_PARAM, self._key))

            request = (RequestBuilder(self._host, self._port, self.config.user_agent)
                .method(method)
                .path(self._prefix + path)
                .params(fields)
                .build())

            host = self._host
            started = time.monotonic()
            response = self._exchange(request)
            elapsed_ms = (time.monotonic() - started) * 1000

            access_logger.info(
                f"{method} {host}{request.path} {response.status} {elapsed_ms:.1f}ms"
            )

            if not response.is_success:
                logger.debug(f"[{self.id}] {method} {request.path} -> {response.status_line}")
                return response.status

            try:
                return response.json()
            except ResponseParseError:
                logger.warning(f"[{self.id}] {method} {request.path} returned invalid JSON")
                self._disconnect("invalid JSON")
                raise

    def _exchange(self, request: HTTPRequest) -> HTTPResponse:
        """
        Send one request and receive its response. Caller holds the lock.

        Any failure leaves the transport closed and the read buffer empty.
        """
        completed = False
        try:
            self._ensure_connected()
            logger.debug(f"[{self.id}] > {request.method} {request.path}")
            self._send(request.to_bytes())
            response = self._receive_response()
            completed = True
        finally:
            if not completed:
                logger.warning(f"[{self.id}] {request.method} {request.path} failed, dropping connection")
                self._disconnect("exchange failed")

        self.exchanges += 1
        self.last_activity = time.monotonic()
        logger.debug(f"[{self.id}] < {response.status_line} ({len(response.body)} bytes)")

        if self._read_buffer:
            logger.warning(
                f"[{self.id}] Discarding {len(self._read_buffer)} unexpected bytes after response"
            )
            self._disconnect("trailing data")
        elif not response.keep_alive:
            self._disconnect("server closed connection")

        return response

    def _ensure_connected(self) -> None:
        if self._transport.connected:
            idle = time.monotonic() - self.last_activity
            if idle < self.config.keep_alive_timeout:
                return
            self._disconnect(f"idle for {idle:.0f}s")

        self._read_buffer.clear()
        logger.debug(f"[{self.id}] Connecting to {self._host}:{self._port}")
        try:
            self._transport.connect(self._host, self._port)
        except socket.timeout as e:
            raise TransportTimeout(
                f"Timed out connecting to {self._host}:{self._port}", self._host, self._port
            ) from e
        except OSError as e:
            raise ConnectError(
                f"Cannot connect to {self._host}:{self._port}: {e}", self._host, self._port
            ) from e
        self.last_activity = time.monotonic()

    def _send(self, data: bytes) -> None:
        try:
            self._transport.write(data)
        except socket.timeout as e:
            raise TransportTimeout("Timed out sending request", self._host, self._port) from e
        except OSError as e:
            raise ConnectError(f"Sending request failed: {e}", self._host, self._port) from e

    def _read(self) -> bytes:
        try:
            return self._transport.read()
        except socket.timeout as e:
            raise TransportTimeout("Timed out waiting for response", self._host, self._port) from e
        except OSError as e:
            raise ConnectError(f"Reading response failed: {e}", self._host, self._port) from e

    def _receive_response(self) -> HTTPResponse:
        """
        Read until the buffer holds one complete response.

        Each read is bounded by the transport's own timeout; the loop as a
        whole by config.response_timeout.
        """
        parser = ResponseParser(
            self._read_buffer,
            max_header_size=self.config.max_header_size,
            max_response_size=self.config.max_response_size,
        )
        deadline = time.monotonic() + self.config.response_timeout
        eof = False

        while True:
            response = parser.parse(eof)
            if response is not None:
                return response
            if eof:
                # parse() raises on every incomplete end of stream
                raise ProtocolError("Connection closed before response was complete")
            if time.monotonic() > deadline:
                raise TransportTimeout(
                    f"No complete response within {self.config.response_timeout}s",
                    self._host,
                    self._port,
                )

            chunk = self._read()
            if chunk:
                self._read_buffer += chunk
            else:
                eof = True

    def _disconnect(self, reason: str) -> None:
        if self._transport.connected:
            logger.debug(f"[{self.id}] Disconnecting: {reason}")
        self._transport.close()
        self._read_buffer.clear()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Close the transport. The next request reconnects."""
        with self._lock:
            self._disconnect("closed by caller")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
