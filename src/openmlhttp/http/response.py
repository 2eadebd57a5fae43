"""
=============================================================================
HTTP RESPONSE MODEL AND INCREMENTAL PARSER
=============================================================================

TCP (and TLS on top of it) delivers a byte STREAM, not messages. A single
read may return half a status line, or a complete response plus part of
the next one. The parser in this module is therefore incremental: it is
called again after every read and answers "not yet" until the buffer
holds one complete response.

=============================================================================
WHEN IS A RESPONSE COMPLETE?
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Response framing (RFC 7230 3.3.3)                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Header block ends at the first \r\n\r\n                         │
    │                                                                      │
    │   2. Status 1xx / 204 / 304  ->  no body, done after headers         │
    │                                                                      │
    │   3. Transfer-Encoding: chunked                                      │
    │        5\r\nhello\r\n0\r\n\r\n   ->  body "hello"                    │
    │                                                                      │
    │   4. Content-Length: N  ->  done once N body bytes are buffered      │
    │                                                                      │
    │   5. Neither  ->  body runs until the server closes the stream       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A stream that ends before rule 1, 3 or 4 is satisfied is a ProtocolError,
never a silently truncated body.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import json
import re

from .headers import Headers
from ..exceptions import ProtocolError, ResponseParseError


JSONValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


@dataclass
class HTTPResponse:
    """
    A complete HTTP response as received from the server.

    Attributes:
        status: Numeric status code (200, 404, ...).
        headers: Response headers, case-insensitive, in arrival order.
        body: Raw body bytes, already de-chunked.
        reason: Reason phrase from the status line (may be empty).
        version: Protocol version from the status line.
        close_delimited: True when the body ran to end of stream.
    """

    status: int
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    reason: str = ""
    version: str = "HTTP/1.1"
    close_delimited: bool = False

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status} {self.reason}".rstrip()

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get("content-length")
        return int(value) if value is not None else None

    @property
    def keep_alive(self) -> bool:
        """
        Can the connection carry another request after this response?

        HTTP/1.1 is persistent by default; HTTP/1.0 only with an explicit
        "Connection: keep-alive". A close-delimited body always ends the
        connection.
        """
        if self.close_delimited:
            return False
        tokens = [t.strip().lower() for t in self.headers.get("connection", "").split(",")]
        if "close" in tokens:
            return False
        if self.version == "HTTP/1.0":
            return "keep-alive" in tokens
        return True

    def json(self) -> JSONValue:
        """
        Parse the body as JSON.

        An empty body (e.g. 204 No Content) yields None.

        Raises:
            ResponseParseError: If the body is not valid JSON.
        """
        if not self.body.strip():
            return None
        try:
            return json.loads(self.body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ResponseParseError(
                f"Invalid JSON in {self.status} response: {e}",
                status=self.status,
                body=self.body,
            ) from e


@dataclass
class _ResponseHead:
    status: int
    reason: str
    version: str
    headers: Headers
    size: int       # bytes taken by status line + headers + blank line


class ResponseParser:
    """
    Incremental HTTP/1.1 response parser over a shared read buffer.

    The parser never copies the buffer; it looks into it on every call to
    parse() and, once a full response is present, deletes exactly the
    bytes of that response from the front. Whatever follows stays in the
    buffer for the caller to inspect.

    Usage:
        buffer = bytearray()
        parser = ResponseParser(buffer)
        while (response := parser.parse(eof)) is None:
            chunk = transport.read()
            eof = not chunk
            buffer += chunk
    """

    # HTTP/1.1 200 OK   |   HTTP/1.1 404   (reason phrase is optional)
    STATUS_LINE_PATTERN = re.compile(r"^HTTP/(\d)\.(\d) (\d{3})(?: (.*))?$")

    # field-name is a token: no whitespace, no separators
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+):[ \t]*(.*?)[ \t]*$")

    CHUNK_SIZE_PATTERN = re.compile(rb"^([0-9A-Fa-f]+)[ \t]*(?:;.*)?$")

    def __init__(
        self,
        buffer: bytearray,
        max_header_size: int = 64 * 1024,
        max_response_size: int = 256 * 1024 * 1024,
    ):
        self.buffer = buffer
        self.max_header_size = max_header_size
        self.max_response_size = max_response_size
        self._head: Optional[_ResponseHead] = None

    @property
    def headers_complete(self) -> bool:
        return self._head is not None

    def parse(self, eof: bool = False) -> Optional[HTTPResponse]:
        """
        Try to extract one complete response from the buffer.

        Args:
            eof: True once the transport has reported end of stream. No
                more bytes will arrive, so anything incomplete is an error.

        Returns:
            The response, or None if more bytes are needed.

        Raises:
            ProtocolError: On malformed input, premature end of stream or
                an oversized response.
        """
        while True:
            if self._head is None:
                self._head = self._parse_head(eof)
                if self._head is None:
                    return None

            head = self._head

            # Interim responses (100 Continue, 102, 103) precede the real
            # one. 101 Switching Protocols is final and has no body.
            if 100 <= head.status < 200 and head.status != 101:
                del self.buffer[:head.size]
                self._head = None
                continue

            return self._parse_body(head, eof)

    # =========================================================================
    # HEAD: status line and header block
    # =========================================================================

    def _parse_head(self, eof: bool) -> Optional[_ResponseHead]:
        header_end = self.buffer.find(b"\r\n\r\n")
        if header_end == -1:
            if len(self.buffer) > self.max_header_size:
                raise ProtocolError(
                    f"Response header block exceeds {self.max_header_size} bytes"
                )
            if eof:
                if not self.buffer:
                    raise ProtocolError("Connection closed before any response was received")
                raise ProtocolError("Connection closed before response headers were complete")
            return None

        if header_end > self.max_header_size:
            raise ProtocolError(f"Response header block exceeds {self.max_header_size} bytes")

        # Header bytes are ISO-8859-1 by definition; decoding cannot fail
        text = bytes(self.buffer[:header_end]).decode("iso-8859-1")
        lines = text.split("\r\n")

        match = self.STATUS_LINE_PATTERN.match(lines[0])
        if not match:
            raise ProtocolError(f"Malformed status line: {lines[0][:100]!r}")
        major, minor, code, reason = match.groups()

        return _ResponseHead(
            status=int(code),
            reason=reason or "",
            version=f"HTTP/{major}.{minor}",
            headers=self._parse_headers(lines[1:]),
            size=header_end + 4,
        )

    def _parse_headers(self, lines: List[str]) -> Headers:
        headers = Headers()
        current_name: Optional[str] = None

        for line in lines:
            # Obsolete line folding: continuation of the previous header
            if line[:1] in (" ", "\t"):
                if current_name is None:
                    raise ProtocolError("Header continuation line without a header")
                headers[current_name] = f"{headers[current_name]} {line.strip()}"
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise ProtocolError(f"Malformed header line: {line[:100]!r}")
            name, value = match.groups()
            headers.add(name, value)
            current_name = name

        return headers

    # =========================================================================
    # BODY: no body / chunked / Content-Length / read-until-close
    # =========================================================================

    def _parse_body(self, head: _ResponseHead, eof: bool) -> Optional[HTTPResponse]:
        start = head.size

        if head.status in (101, 204, 304):
            return self._finish(head, b"", start)

        transfer_encoding = head.headers.get("transfer-encoding")
        if transfer_encoding is not None:
            codings = [c.strip().lower() for c in transfer_encoding.split(",") if c.strip()]
            if codings != ["chunked"]:
                raise ProtocolError(f"Unsupported transfer encoding: {transfer_encoding!r}")
            return self._parse_chunked(head, eof)

        content_length = self._content_length(head.headers)
        if content_length is not None:
            if content_length > self.max_response_size:
                raise ProtocolError(
                    f"Response body of {content_length} bytes exceeds limit "
                    f"of {self.max_response_size}"
                )
            available = len(self.buffer) - start
            if available < content_length:
                if eof:
                    raise ProtocolError(
                        f"Connection closed after {available} of "
                        f"{content_length} body bytes"
                    )
                return None
            body = bytes(self.buffer[start:start + content_length])
            return self._finish(head, body, start + content_length)

        # Close-delimited: everything until end of stream is body
        self._check_size(len(self.buffer) - start)
        if not eof:
            return None
        body = bytes(self.buffer[start:])
        return self._finish(head, body, len(self.buffer), close_delimited=True)

    def _content_length(self, headers: Headers) -> Optional[int]:
        value = headers.get("content-length")
        if value is None:
            return None
        # Repeated headers were joined as "5, 5"; all copies must agree
        values = {v.strip() for v in value.split(",")}
        if len(values) != 1:
            raise ProtocolError(f"Conflicting Content-Length values: {value!r}")
        text = values.pop()
        if not text.isdigit():
            raise ProtocolError(f"Invalid Content-Length: {value!r}")
        return int(text)

    def _parse_chunked(self, head: _ResponseHead, eof: bool) -> Optional[HTTPResponse]:
        """
        De-chunk the body once the terminating zero-size chunk has arrived.

            1a;ext=ignored\r\n       <- size in hex, optional extension
            <26 bytes>\r\n
            0\r\n                    <- last chunk
            Trailer: ignored\r\n     <- optional trailers
            \r\n
        """
        pos = head.size
        parts: List[bytes] = []
        total = 0

        while True:
            line_end = self.buffer.find(b"\r\n", pos)
            if line_end == -1:
                return self._need_more(eof, "chunk size line")

            size_line = bytes(self.buffer[pos:line_end])
            match = self.CHUNK_SIZE_PATTERN.match(size_line)
            if not match:
                raise ProtocolError(f"Malformed chunk size line: {size_line[:100]!r}")
            size = int(match.group(1), 16)
            pos = line_end + 2

            if size == 0:
                break

            total += size
            self._check_size(total)
            if len(self.buffer) < pos + size + 2:
                return self._need_more(eof, "chunk data")
            if self.buffer[pos + size:pos + size + 2] != b"\r\n":
                raise ProtocolError("Chunk data not terminated by CRLF")
            parts.append(bytes(self.buffer[pos:pos + size]))
            pos += size + 2

        # Trailer section, ended by an empty line
        while True:
            line_end = self.buffer.find(b"\r\n", pos)
            if line_end == -1:
                return self._need_more(eof, "chunked trailer")
            empty = line_end == pos
            pos = line_end + 2
            if empty:
                break

        return self._finish(head, b"".join(parts), pos)

    def _need_more(self, eof: bool, what: str) -> None:
        if eof:
            raise ProtocolError(f"Connection closed inside chunked body ({what})")
        return None

    def _check_size(self, size: int) -> None:
        if size > self.max_response_size:
            raise ProtocolError(
                f"Response body exceeds limit of {self.max_response_size} bytes"
            )

    def _finish(
        self,
        head: _ResponseHead,
        body: bytes,
        end: int,
        close_delimited: bool = False,
    ) -> HTTPResponse:
        del self.buffer[:end]
        self._head = None
        return HTTPResponse(
            status=head.status,
            headers=head.headers,
            body=body,
            reason=head.reason,
            version=head.version,
            close_delimited=close_delimited,
        )


def parse_response(data: bytes, eof: bool = True) -> HTTPResponse:
    """
    Parse one complete response from raw bytes.

    Convenience wrapper for tests and tools; the Connection drives
    ResponseParser incrementally instead.

    Raises:
        ProtocolError: If the bytes do not hold one complete response.
    """
    parser = ResponseParser(bytearray(data))
    response = parser.parse(eof=eof)
    if response is None:
        raise ProtocolError("Incomplete response")
    return response
