"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure raised by this package derives from OpenMLHTTPError, so
callers can catch the whole family in one place or branch on the kind:

    ┌──────────────────────┬──────────────────────────────────────────────┐
    │  Exception           │  Meaning                                     │
    ├──────────────────────┼──────────────────────────────────────────────┤
    │  ConnectError        │  Could not connect, or the transport broke   │
    │   └ TransportTimeout │  ... because a connect/read/write timed out  │
    │  ProtocolError       │  The server's reply is not valid HTTP/1.1    │
    │  ResponseParseError  │  2xx reply whose body is not valid JSON      │
    │  ParameterError      │  Malformed request parameters (caller bug)   │
    └──────────────────────┴──────────────────────────────────────────────┘

A non-2xx HTTP status is NOT an exception. The Connection returns the
status code as an int and leaves the interpretation to the caller:

    result = conn.get("/data/61")
    if isinstance(result, int):
        print(f"server said {result}")     # logical failure
    else:
        print(result["data_set_description"]["name"])

=============================================================================
"""

from typing import Optional


class OpenMLHTTPError(Exception):
    """Base class for all errors raised by openmlhttp."""


class ConnectError(OpenMLHTTPError):
    """
    The transport could not be established or failed mid-exchange.

    Raised for DNS failures, refused connections, TLS handshake errors and
    socket errors while writing the request or reading the response.
    """

    def __init__(self, message: str, host: str = "", port: int = 0):
        super().__init__(message)
        self.host = host
        self.port = port


class TransportTimeout(ConnectError):
    """A connect, read or write did not finish within its time limit."""


class ProtocolError(OpenMLHTTPError):
    """
    The server's reply could not be framed as an HTTP/1.1 response.

    Covers malformed status lines and headers, a stream closed before the
    response was complete, unsupported transfer codings and oversized
    responses.
    """


class ResponseParseError(OpenMLHTTPError):
    """
    A successful (2xx) reply carried a body that is not valid JSON.

    Kept distinct from ProtocolError so callers can tell "server
    unreachable" apart from "server replied with garbage".
    """

    def __init__(self, message: str, status: int = 0, body: Optional[bytes] = None):
        super().__init__(message)
        self.status = status
        self.body = body if body is not None else b""


class ParameterError(OpenMLHTTPError, ValueError):
    """
    The request parameters are malformed.

    Raised at call time, before anything is sent, e.g. for a file marker
    with a trailing separator ("file|text/plain|").
    """
