"""
HTTP/1.1 message handling: request encoding and response parsing.

    from openmlhttp.http import (
        HTTPRequest, RequestBuilder, build_request,     # request side
        HTTPResponse, ResponseParser, parse_response,   # response side
        PlainField, FileField, parse_params,            # parameters
        Headers,
    )
"""

from .headers import Headers
from .params import (
    FileField,
    PlainField,
    Field,
    ParamList,
    encode_multipart,
    make_boundary,
    parse_field,
    parse_params,
    url_encode,
)
from .request import HTTPRequest, RequestBuilder, build_request
from .response import HTTPResponse, JSONValue, ResponseParser, parse_response
from .mime_types import get_mime_type


__all__ = [
    "Headers",
    "FileField",
    "PlainField",
    "Field",
    "ParamList",
    "encode_multipart",
    "make_boundary",
    "parse_field",
    "parse_params",
    "url_encode",
    "HTTPRequest",
    "RequestBuilder",
    "build_request",
    "HTTPResponse",
    "JSONValue",
    "ResponseParser",
    "parse_response",
    "get_mime_type",
]
