"""
=============================================================================
OPENMLHTTP - Client for the OpenML JSON REST API, built from raw sockets
=============================================================================

A hand-built HTTP/1.1-over-TLS client: it frames requests, parses
responses, encodes multipart uploads and serialises concurrent use of a
single persistent connection.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    openmlhttp/
    ├── __init__.py          # Public API (this file)
    ├── __main__.py          # Command-line client
    ├── config.py            # ConnectionConfig, configure_logging
    ├── exceptions.py        # Error taxonomy
    ├── core/
    │   ├── connection.py    # Connection: locking, exchange, receive loop
    │   └── transport.py     # Transport interface, TLSTransport
    └── http/
        ├── headers.py       # Case-insensitive ordered headers
        ├── params.py        # Ordered parameters, file markers, encodings
        ├── request.py       # HTTPRequest, RequestBuilder
        ├── response.py      # HTTPResponse, ResponseParser
        └── mime_types.py    # Extension -> MIME type for uploads

=============================================================================
QUICK START
=============================================================================

    from openmlhttp import Connection, ConnectionConfig

    conn = Connection(config=ConnectionConfig.from_env())

    result = conn.get("/data/61")
    if isinstance(result, int):
        print(f"OpenML answered with status {result}")
    else:
        print(result["data_set_description"]["name"])

    conn.post("/data/tag", [("data_id", "61"), ("tag", "study_1")])

    conn.post("/run", [
        ("task_id", "59"),
        ("description|text/xml|description.xml", description_xml),
        ("predictions|text/plain|predictions.arff", predictions_arff),
    ])

=============================================================================
"""

from .config import ConnectionConfig, configure_logging
from .core import API_KEY_PARAM, Connection, TLSTransport, Transport
from .exceptions import (
    ConnectError,
    OpenMLHTTPError,
    ParameterError,
    ProtocolError,
    ResponseParseError,
    TransportTimeout,
)
from .http import FileField, HTTPResponse, JSONValue, PlainField


__version__ = "1.0.0"

__all__ = [
    "Connection",
    "ConnectionConfig",
    "configure_logging",
    "API_KEY_PARAM",
    "Transport",
    "TLSTransport",
    "OpenMLHTTPError",
    "ConnectError",
    "TransportTimeout",
    "ProtocolError",
    "ResponseParseError",
    "ParameterError",
    "PlainField",
    "FileField",
    "HTTPResponse",
    "JSONValue",
]
