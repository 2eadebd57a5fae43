"""
=============================================================================
HTTP REQUEST BUILDER
=============================================================================

Builds HTTP/1.1 request bytes by hand, per RFC 7230.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    POST /api/v1/json/data HTTP/1.1\r\n          <- request line      │
    │    Host: www.openml.org\r\n                                          │
    │    User-Agent: openmlhttp/1.0\r\n                                    │
    │    Accept: application/json\r\n                                      │
    │    Connection: keep-alive\r\n                                        │
    │    Content-Type: application/x-www-form-urlencoded\r\n               │
    │    Content-Length: 24\r\n                                            │
    │    \r\n                                         <- end of headers    │
    │    name=iris&api_key=abc123                     <- body              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

GET and DELETE put the parameters in the query string instead:

    GET /api/v1/json/data/list/limit/10?api_key=abc123 HTTP/1.1\r\n

=============================================================================
BUILDER PATTERN
=============================================================================

    request = (RequestBuilder("www.openml.org")
        .method("POST")
        .path("/api/v1/json/run")
        .params(fields)
        .build())

    transport.write(request.to_bytes())

params() picks the encoding: query string for GET/DELETE, urlencoded form
for POST, multipart when any field is a file upload.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from .headers import Headers
from .params import Field, encode_multipart, has_files, url_encode, parse_params, ParamList
from ..exceptions import ParameterError


DEFAULT_USER_AGENT = "openmlhttp/1.0"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class HTTPRequest:
    """
    An HTTP request ready to be written to the transport.

    Attributes:
        method: GET, POST or DELETE.
        target: Request target, path plus optional query string.
        headers: Request headers in wire order.
        body: Encoded request body (empty for GET/DELETE).
    """

    method: str
    target: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.target} {self.version}"

    @property
    def path(self) -> str:
        """Target without the query string (what gets logged)."""
        return self.target.split("?", 1)[0]

    def to_bytes(self) -> bytes:
        """
        Serialize the request for the wire.

        Content-Length is added for any request with a body, and for every
        POST (an empty POST still needs "Content-Length: 0").
        """
        headers = self.headers.copy()
        if self.body or self.method == "POST":
            headers["Content-Length"] = str(len(self.body))

        lines = [self.request_line]
        for name, value in headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        head = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return head + self.body


class RequestBuilder:
    """Fluent builder for HTTPRequest."""

    METHODS = ("GET", "POST", "DELETE")

    def __init__(self, host: str, port: int = 443, user_agent: str = DEFAULT_USER_AGENT):
        self._method = "GET"
        self._path = "/"
        self._fields: Sequence[Field] = ()
        self._boundary: Optional[str] = None
        self._headers = Headers()
        # Host carries the port only when it is not the scheme default
        self._headers["Host"] = host if port == 443 else f"{host}:{port}"
        self._headers["User-Agent"] = user_agent
        self._headers["Accept"] = "application/json"
        self._headers["Connection"] = "keep-alive"

    def method(self, method: str) -> "RequestBuilder":
        method = method.upper()
        if method not in self.METHODS:
            raise ParameterError(f"Unsupported HTTP method: {method}")
        self._method = method
        return self

    def path(self, path: str) -> "RequestBuilder":
        if not path.startswith("/"):
            path = "/" + path
        if any(c.isspace() for c in path):
            raise ParameterError(f"Request path must not contain whitespace: {path!r}")
        self._path = path
        return self

    def params(self, params: ParamList) -> "RequestBuilder":
        self._fields = parse_params(params)
        return self

    def boundary(self, boundary: str) -> "RequestBuilder":
        """Fix the multipart boundary instead of generating one."""
        self._boundary = boundary
        return self

    def header(self, name: str, value: str) -> "RequestBuilder":
        self._headers[name] = value
        return self

    def build(self) -> HTTPRequest:
        """
        Encode the parameters and assemble the request.

        Raises:
            ParameterError: If a file field appears in a GET or DELETE.
        """
        target = self._path
        body = b""
        headers = self._headers.copy()

        if self._method == "POST":
            if has_files(self._fields):
                body, content_type = encode_multipart(self._fields, self._boundary)
            else:
                body = url_encode(self._fields).encode("ascii")
                content_type = FORM_CONTENT_TYPE
            headers["Content-Type"] = content_type
        elif self._fields:
            query = url_encode(self._fields)
            target = f"{target}{'&' if '?' in target else '?'}{query}"

        return HTTPRequest(method=self._method, target=target, headers=headers, body=body)


def build_request(
    method: str,
    host: str,
    path: str,
    params: ParamList = (),
    port: int = 443,
    user_agent: str = DEFAULT_USER_AGENT,
) -> HTTPRequest:
    """
    Convenience function to build a request in one call.

    Args:
        method: GET, POST or DELETE.
        host: Server host name for the Host header.
        path: Full request path, prefix included.
        params: Ordered parameter list.
        port: Server port (added to Host when not 443).
        user_agent: User-Agent header value.
    """
    return (RequestBuilder(host, port, user_agent)
        .method(method)
        .path(path)
        .params(params)
        .build())
